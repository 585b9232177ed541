"""
Database models for discovered companies and their contacts.
"""
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Date, ForeignKey, Text, BigInteger, Float,
    Enum as SQLEnum, Index, JSON,
)
from sqlalchemy.orm import relationship

from prospector.core.database import Base
from prospector.core.models import PipelineStage


class ClientModel(Base):
    """
    A client workspace. Companies, funnels and signals are scoped to one client.
    Maps to the 'clients' table.
    """
    __tablename__ = 'clients'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    # What the client sells; drives tech-adoption signals and LLM prompts
    product_keywords = Column(JSON, default=list)
    product_description = Column(Text)
    # Optional per-client overrides: {"composite_weights": {...}, "waterfall": {...}}
    strategy = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Client(id={self.id}, name='{self.name}')>"


class CompanyModel(Base):
    """
    SQLAlchemy model for companies.
    Maps to the 'companies' table. One row per (client, domain); rows
    without a domain are never merged.
    """
    __tablename__ = 'companies'

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)

    # Identity
    name = Column(String(255), nullable=False, index=True)
    domain = Column(String(255), nullable=True)  # always lower-cased
    linkedin_url = Column(String(500))
    website_url = Column(String(500))
    external_ids = Column(JSON, default=dict)

    # Firmographics
    industry = Column(String(255), index=True)
    sub_industry = Column(String(255))
    employee_count = Column(Integer)
    employee_range = Column(String(50))
    annual_revenue = Column(BigInteger)
    revenue_range = Column(String(50))
    founded_year = Column(Integer)
    total_funding = Column(BigInteger)
    latest_funding_stage = Column(String(100))
    latest_funding_date = Column(Date)

    # Location
    city = Column(String(100))
    state = Column(String(100))
    country = Column(String(100), index=True)
    address = Column(Text)

    tech_stack = Column(JSON, default=list)
    logo_url = Column(String(500))
    description = Column(Text)
    phone = Column(String(50))

    # Provenance: list of {"source", "fetched_at", "fields_provided"}
    sources = Column(JSON, default=list)
    primary_source = Column(String(50))
    # Credits spent on this company across sources
    enrichment_cost = Column(Float, default=0.0)

    pipeline_stage = Column(SQLEnum(PipelineStage), default=PipelineStage.TAM, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contacts = relationship("ContactModel", back_populates="company", cascade="all, delete-orphan")

    __table_args__ = (
        Index('uq_companies_client_domain', 'client_id', 'domain', unique=True),
    )

    def __repr__(self):
        return f"<Company(name='{self.name}', domain='{self.domain}', stage='{self.pipeline_stage}')>"


class ContactModel(Base):
    """
    SQLAlchemy model for people working at a company.
    Maps to the 'contacts' table.
    """
    __tablename__ = 'contacts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey('companies.id'), nullable=False, index=True)

    first_name = Column(String(100))
    last_name = Column(String(100))
    full_name = Column(String(255))
    title = Column(String(255), index=True)
    seniority = Column(String(50), index=True)
    department = Column(String(100))
    linkedin_url = Column(String(500))
    work_email = Column(String(255))
    email_verified = Column(Boolean, nullable=True)
    phone = Column(String(50))
    city = Column(String(100))
    country = Column(String(100))

    employment_history = Column(JSON, default=list)
    external_ids = Column(JSON, default=dict)
    sources = Column(JSON, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    company = relationship("CompanyModel", back_populates="contacts")

    __table_args__ = (
        Index('uq_contacts_company_linkedin', 'company_id', 'linkedin_url', unique=True),
    )

    @property
    def display_name(self) -> str:
        return self.full_name or " ".join(p for p in (self.first_name, self.last_name) if p) or "Unknown"

    def __repr__(self):
        return f"<Contact(name='{self.display_name}', title='{self.title}', company_id={self.company_id})>"
