# backend/aeroconflict/models/project_geometry.py
from sqlalchemy import Integer, String, Column, ForeignKey, Boolean, DateTime, Text, func
from .base import Base


class ProjectGeometry(Base):
    __tablename__ = "project_geometries"
    id = Column(Integer, primary_key=True)
    project_id = Column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name = Column(String, nullable=False, default="Aggregated Project Geometry")
    geometry_data = Column(Text, nullable=False)  # GeoJSON FeatureCollection string (EPSG:4326)
    is_primary = Column(Boolean, default=True)
    geometry_type = Column(String, default="collection")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
