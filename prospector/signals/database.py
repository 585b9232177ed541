"""
Database models for buying signals.
Signal rows are immutable once written; expiry is applied when reading.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Date, ForeignKey, Text, DECIMAL, Index, JSON
from sqlalchemy.orm import relationship

from prospector.core.database import Base


class CompanySignalModel(Base):
    """
    Evidence that a company may be ready to buy.
    Maps to the 'company_signals' table.
    """
    __tablename__ = 'company_signals'

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)
    company_id = Column(Integer, ForeignKey('companies.id'), nullable=False, index=True)

    signal_type = Column(String(50), nullable=False, index=True)
    strength = Column(DECIMAL(3, 2), nullable=False)
    evidence = Column(Text)
    source = Column(String(50), nullable=False)  # rule_based | llm_analysis
    source_url = Column(String(500))
    details = Column(JSON, default=dict)
    event_date = Column(Date, nullable=True)

    detected_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    company = relationship("CompanyModel")

    __table_args__ = (
        Index('idx_company_signals_company_expiry', 'company_id', 'expires_at'),
    )

    def __repr__(self):
        return f"<CompanySignal(type='{self.signal_type}', strength={self.strength}, company_id={self.company_id})>"


class ContactSignalModel(Base):
    """
    Persona-fit and career-event evidence for one contact.
    Maps to the 'contact_signals' table.
    """
    __tablename__ = 'contact_signals'

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey('clients.id'), nullable=False, index=True)
    contact_id = Column(Integer, ForeignKey('contacts.id'), nullable=False, index=True)
    persona_id = Column(Integer, ForeignKey('personas.id'), nullable=True)

    signal_type = Column(String(50), nullable=False)
    strength = Column(DECIMAL(3, 2), nullable=False)
    source = Column(String(50), nullable=False, default='rule_based')
    evidence = Column(Text)
    details = Column(JSON, default=dict)
    detected_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ContactSignal(type='{self.signal_type}', strength={self.strength}, contact_id={self.contact_id})>"
