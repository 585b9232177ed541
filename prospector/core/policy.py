"""
Funnel policy configuration.

Every tunable constant used by discovery, scoring and stage advancement
lives here so call paths never hard-code thresholds. Loaded from
config/policy.yaml with a fallback to config/policy.example.yaml and then
to the built-in defaults below.
"""
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)


class Thresholds(BaseModel):
    # Discovery scores candidates that already passed a provider-side filter
    discovery_fit_threshold: float = 0.3
    # Funnel build rescoring of the whole pool
    funnel_fit_threshold: float = 0.2
    # active_segment -> qualified
    company_signal_strength: float = 0.5
    company_signal_score: float = 0.3
    # qualified -> ready_to_approach
    persona_score_threshold: float = 0.5
    # LLM signals below this strength are discarded
    llm_signal_min_strength: float = 0.7
    # LLM signal detection only runs on descriptions longer than this
    llm_text_min_chars: int = 50


class WaterfallDefaults(BaseModel):
    quality_threshold: float = 0.7
    max_providers: int = 3
    required_fields: List[str] = Field(default_factory=lambda: ["name", "domain"])
    cost_budget: Optional[float] = None


class DiscoveryPolicy(BaseModel):
    over_fetch_multiplier: int = 2
    backfill_batch_size: int = 20
    top_enrich_limit: int = 20
    fallback_suggestion_limit: int = 15
    blocked_domains: List[str] = Field(default_factory=lambda: [
        "linkedin.com", "facebook.com", "twitter.com", "x.com", "instagram.com",
        "youtube.com", "tiktok.com", "pinterest.com", "reddit.com", "medium.com",
        "linktr.ee", "bit.ly", "about.me", "wikipedia.org", "crunchbase.com",
        "zoominfo.com", "glassdoor.com", "indeed.com", "yelp.com", "g2.com",
        "capterra.com", "clutch.co", "bloomberg.com", "github.com", "google.com",
        "apple.com", "angel.co", "wellfound.com", "producthunt.com", "trustpilot.com",
    ])
    non_company_patterns: List[str] = Field(default_factory=lambda: [
        r"^(the )?(top|best|leading) \d+\b",
        r"\b\d+ (best|top|leading)\b",
        r"\b(list|lists|directory|directories|ranking|rankings)\b",
        r"\b(award|awards|winners|finalists)\b",
        r"\b(association|federation|chamber of commerce|consortium)\b",
        r"\b(jobs|careers|job board|hiring now)\b",
        r"\b(companies|startups|vendors|suppliers|providers) (in|for|to watch)\b",
        r"\b(review|reviews|comparison|vs\.?|alternatives)\b",
        r"\b(news|blog|magazine|podcast|wiki)\b",
    ])


class CompositeWeights(BaseModel):
    fit: float = 0.35
    signal: float = 0.30
    originality: float = 0.20
    cost_efficiency: float = 0.15

    @model_validator(mode="after")
    def validate_weights_sum(self):
        total = self.fit + self.signal + self.originality + self.cost_efficiency
        if abs(total - 1.0) > 0.01:
            raise ValueError(f"Composite weights must sum to 1.0, got {total:.3f}")
        return self


class SignalDefinition(BaseModel):
    weight: float
    decay_days: int = 90


class FunnelPolicy(BaseModel):
    """Complete policy configuration for the prospecting pipeline."""
    name: str = "Default Policy"
    version: str = "1.0"

    thresholds: Thresholds = Field(default_factory=Thresholds)
    waterfall: WaterfallDefaults = Field(default_factory=WaterfallDefaults)
    discovery: DiscoveryPolicy = Field(default_factory=DiscoveryPolicy)
    composite_weights: CompositeWeights = Field(default_factory=CompositeWeights)

    default_decay_days: int = 90
    signal_definitions: Dict[str, SignalDefinition] = Field(default_factory=lambda: {
        "recent_funding": SignalDefinition(weight=0.9, decay_days=180),
        "hiring_surge": SignalDefinition(weight=0.8, decay_days=90),
        "leadership_change": SignalDefinition(weight=0.85, decay_days=120),
        "tech_adoption": SignalDefinition(weight=0.7, decay_days=90),
        "expansion": SignalDefinition(weight=0.75, decay_days=120),
        "new_product_launch": SignalDefinition(weight=0.65, decay_days=90),
        "pain_point_detected": SignalDefinition(weight=0.95, decay_days=60),
        "competitive_displacement": SignalDefinition(weight=0.9, decay_days=90),
    })

    # How widely a source's data is shared across the market (0 = unique, 1 = everyone has it)
    source_commonality: Dict[str, float] = Field(default_factory=lambda: {
        "apollo": 0.95,
        "leadmagic": 0.4,
        "exa": 0.1,
        "llm_suggestion": 0.2,
    })

    def decay_days(self, signal_type: str) -> int:
        definition = self.signal_definitions.get(signal_type)
        return definition.decay_days if definition else self.default_decay_days

    def signal_weight(self, signal_type: str) -> float:
        definition = self.signal_definitions.get(signal_type)
        return definition.weight if definition else 0.5

    def originality(self, source: str) -> float:
        commonality = self.source_commonality.get(source)
        return 0.5 if commonality is None else round(1.0 - commonality, 2)

    # =================================================================
    # LOADERS
    # =================================================================

    @classmethod
    def from_yaml(cls, path: Path) -> "FunnelPolicy":
        """Load policy configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Policy config not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        return cls(**raw)

    @classmethod
    def load(cls, config_dir: Optional[Path] = None) -> "FunnelPolicy":
        """
        Load policy with fallback chain:
          1. config/policy.yaml (private, gitignored)
          2. config/policy.example.yaml (public, committed)
          3. Built-in defaults
        """
        if config_dir is None:
            from prospector.core.config import settings
            config_dir = settings.config_dir

        private = config_dir / "policy.yaml"
        example = config_dir / "policy.example.yaml"

        if private.exists():
            logger.info(f"Loading policy config from {private}")
            return cls.from_yaml(private)
        elif example.exists():
            logger.info(f"No policy.yaml found, falling back to {example}")
            return cls.from_yaml(example)
        else:
            logger.warning("No policy config found, using built-in defaults")
            return cls()


# =============================================================================
# SINGLETON INSTANCE
# =============================================================================

policy: FunnelPolicy = FunnelPolicy.load()
