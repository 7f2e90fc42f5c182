# backend/aeroconflict/models/flight_procedure.py
from sqlalchemy import Integer, String, Column, Boolean, DateTime, Text, func
from .base import Base


class FlightProcedure(Base):
    __tablename__ = "flight_procedures"
    id = Column(Integer, primary_key=True)
    procedure_code = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # SID|STAR|APPROACH|DEPARTURE|ARRIVAL
    airport_icao = Column(String, nullable=False)
    runway = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    # 保護区域（GeoJSON FeatureCollection of Polygon を想定, EPSG:4326）
    protection_geometry = Column(Text, nullable=True)
    conflict_severity = Column(String, default="High")  # Critical|High|Medium|Low|Informational
    analysis_priority = Column(Integer, default=80)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
