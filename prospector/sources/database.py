"""
Database models for source performance metrics.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, DECIMAL, Index

from prospector.core.database import Base


class SourcePerformanceModel(Base):
    """
    One row per source call, success or failure.
    Maps to the 'source_performance' table.
    """
    __tablename__ = 'source_performance'

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(50), nullable=False)
    client_id = Column(Integer, nullable=True, index=True)
    operation = Column(String(50), nullable=False)
    success = Column(Boolean, nullable=False, default=False)
    quality_score = Column(DECIMAL(3, 2), nullable=True)
    response_time_ms = Column(Integer, default=0)
    fields_populated = Column(Integer, default=0)
    cost_credits = Column(Float, default=0.0)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_source_performance_source_created', 'source', 'created_at'),
    )

    def __repr__(self):
        return f"<SourcePerformance(source='{self.source}', op='{self.operation}', success={self.success})>"
