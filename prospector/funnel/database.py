"""
Database models for target profiles, personas, funnels and funnel members.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, Numeric, Index, JSON, text
from sqlalchemy.orm import relationship

from prospector.core.data_types import PersonaFilter, TargetFilters
from prospector.core.database import Base


class TargetProfileModel(Base):
    """
    A client's ideal customer profile.
    Maps to the 'target_profiles' table. Filters are stored as TargetFilters JSON.
    """
    __tablename__ = 'target_profiles'

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    filters = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_filters(self) -> TargetFilters:
        return TargetFilters.from_dict(self.filters)

    def __repr__(self):
        return f"<TargetProfile(id={self.id}, name='{self.name}')>"


class PersonaModel(Base):
    __tablename__ = 'personas'

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    title_patterns = Column(JSON, default=list)
    exclude_title_patterns = Column(JSON, default=list)
    seniority_levels = Column(JSON, default=list)
    departments = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_filter(self) -> PersonaFilter:
        return PersonaFilter(
            title_patterns=list(self.title_patterns or []),
            exclude_title_patterns=list(self.exclude_title_patterns or []),
            seniority_levels=list(self.seniority_levels or []),
            departments=list(self.departments or []),
        )

    def __repr__(self):
        return f"<Persona(id={self.id}, name='{self.name}')>"


class FunnelModel(Base):
    """
    A named, scored collection of companies (and optionally their contacts).
    Maps to the 'funnels' table.
    """
    __tablename__ = 'funnels'

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)
    target_profile_id = Column(Integer, ForeignKey('target_profiles.id'), nullable=True)
    persona_id = Column(Integer, ForeignKey('personas.id'), nullable=True)

    name = Column(String(255), nullable=False)
    description = Column(Text)

    # Optional per-funnel overrides: {"composite_weights": {...}, "waterfall": {...}}
    strategy = Column(JSON, default=dict)
    # {"filters": ..., "persona": ..., "applied_at": ...} captured on every build
    filter_snapshot = Column(JSON)

    refresh_cron = Column(String(100))  # e.g. "0 6 * * 1"
    last_built_at = Column(DateTime)
    last_refreshed_at = Column(DateTime)

    company_count = Column(Integer, default=0, nullable=False)
    contact_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    target_profile = relationship("TargetProfileModel")
    persona = relationship("PersonaModel")

    @property
    def member_count(self) -> int:
        return (self.company_count or 0) + (self.contact_count or 0)

    def __repr__(self):
        return f"<Funnel(id={self.id}, name='{self.name}', companies={self.company_count})>"


class FunnelMemberModel(Base):
    """
    One company or contact in a funnel.
    Maps to the 'funnel_members' table. Contact members also carry their
    company_id. Members are soft-deleted via removed_at; at most one active
    row exists per (funnel, company) and per (funnel, contact).
    """
    __tablename__ = 'funnel_members'

    id = Column(Integer, primary_key=True, autoincrement=True)
    funnel_id = Column(Integer, ForeignKey('funnels.id', ondelete='CASCADE'), nullable=False)
    company_id = Column(Integer, ForeignKey('companies.id'), nullable=True)
    contact_id = Column(Integer, ForeignKey('contacts.id'), nullable=True)

    fit_score = Column(Numeric(3, 2))
    signal_score = Column(Numeric(3, 2))
    originality_score = Column(Numeric(3, 2))
    composite_score = Column(Numeric(3, 2))
    persona_score = Column(Numeric(3, 2))
    added_reason = Column(Text)

    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    removed_at = Column(DateTime, nullable=True)

    company = relationship("CompanyModel")
    contact = relationship("ContactModel")

    __table_args__ = (
        Index('idx_funnel_members_funnel', 'funnel_id'),
        Index('idx_funnel_members_company', 'company_id'),
        Index(
            'uq_funnel_members_active_company', 'funnel_id', 'company_id',
            unique=True,
            postgresql_where=text('removed_at IS NULL AND contact_id IS NULL'),
            sqlite_where=text('removed_at IS NULL AND contact_id IS NULL'),
        ),
        Index(
            'uq_funnel_members_active_contact', 'funnel_id', 'contact_id',
            unique=True,
            postgresql_where=text('removed_at IS NULL AND contact_id IS NOT NULL'),
            sqlite_where=text('removed_at IS NULL AND contact_id IS NOT NULL'),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.removed_at is None

    def __repr__(self):
        return (
            f"<FunnelMember(funnel_id={self.funnel_id}, company_id={self.company_id}, "
            f"contact_id={self.contact_id}, composite={self.composite_score})>"
        )
