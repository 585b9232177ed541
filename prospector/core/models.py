"""
Core enums for the prospecting pipeline.

NOTE: These are NOT database models. For SQLAlchemy ORM models, see each module's database.py:
  - Company/Contact → prospector/companies/database.py
  - CompanySignal/ContactSignal → prospector/signals/database.py
  - TargetProfile/Persona/Funnel/FunnelMember → prospector/funnel/database.py
  - Job → prospector/jobs/database.py
  - SourcePerformance → prospector/sources/database.py
"""
from enum import Enum


class PipelineStage(str, Enum):
    TAM = "tam"
    ACTIVE_SEGMENT = "active_segment"
    QUALIFIED = "qualified"
    READY_TO_APPROACH = "ready_to_approach"
    IN_SEQUENCE = "in_sequence"
    CONVERTED = "converted"

    @property
    def rank(self) -> int:
        return STAGE_ORDER.index(self)

    def next(self) -> "PipelineStage":
        if self is PipelineStage.CONVERTED:
            raise ValueError("converted is the final stage")
        return STAGE_ORDER[self.rank + 1]


STAGE_ORDER = [
    PipelineStage.TAM,
    PipelineStage.ACTIVE_SEGMENT,
    PipelineStage.QUALIFIED,
    PipelineStage.READY_TO_APPROACH,
    PipelineStage.IN_SEQUENCE,
    PipelineStage.CONVERTED,
]


class Capability(str, Enum):
    COMPANY_SEARCH = "company_search"
    COMPANY_ENRICH = "company_enrich"
    PEOPLE_SEARCH = "people_search"
    EMAIL_FIND = "email_find"
    EMAIL_VERIFY = "email_verify"


class SignalType(str, Enum):
    RECENT_FUNDING = "recent_funding"
    HIRING_SURGE = "hiring_surge"
    LEADERSHIP_CHANGE = "leadership_change"
    TECH_ADOPTION = "tech_adoption"
    EXPANSION = "expansion"
    NEW_PRODUCT_LAUNCH = "new_product_launch"
    PAIN_POINT_DETECTED = "pain_point_detected"
    COMPETITIVE_DISPLACEMENT = "competitive_displacement"


class PersonaSignalType(str, Enum):
    TITLE_MATCH = "title_match"
    SENIORITY_MATCH = "seniority_match"
    JOB_CHANGE = "job_change"
    TENURE_SIGNAL = "tenure_signal"


class JobType(str, Enum):
    DISCOVER = "discover"
    BUILD_FUNNEL = "build_funnel"
    REFRESH_FUNNEL = "refresh_funnel"
    COMPANY_SIGNALS = "company_signals"
    PERSONA_SIGNALS = "persona_signals"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)
