# backend/aeroconflict/models/conflict.py
from sqlalchemy import Integer, String, Column, ForeignKey, DateTime, Text, func
from .base import Base


class Conflict(Base):
    __tablename__ = "conflicts"
    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    flight_procedure_id = Column(
        Integer, ForeignKey("flight_procedures.id", ondelete="CASCADE"), nullable=False
    )
    description = Column(Text, nullable=True)
    conflicting_geometry = Column(Text, nullable=False, default="{}")  # GeoJSON string, "{}" = 交差形状なし
    severity = Column(String, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
