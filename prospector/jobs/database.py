"""
Database model for background jobs.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, ForeignKey, Text, Boolean, Enum as SQLEnum, Index, JSON

from prospector.core.database import Base
from prospector.core.models import JobStatus, JobType


class JobModel(Base):
    """
    One queued pipeline run. Workers write progress counters and the final
    output or error onto this row; pollers only read it.
    Maps to the 'jobs' table.
    """
    __tablename__ = 'jobs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False)

    type = Column(SQLEnum(JobType), nullable=False)
    status = Column(SQLEnum(JobStatus), default=JobStatus.PENDING, nullable=False)

    total_items = Column(Integer, default=0)
    processed_items = Column(Integer, default=0)
    failed_items = Column(Integer, default=0)

    input = Column(JSON, default=dict)
    output = Column(JSON, default=dict)
    error = Column(Text)
    cancel_requested = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index('idx_jobs_client_status', 'client_id', 'status'),
        Index('idx_jobs_type_status', 'type', 'status'),
    )

    def __repr__(self):
        return f"<Job(id={self.id}, type='{self.type}', status='{self.status}', {self.processed_items}/{self.total_items})>"
