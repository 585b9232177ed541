"""
Composite scoring: fit, buying signals, data originality and cost efficiency
blended into one ranking value.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from prospector.core.data_types import ScoreResult, SourceRecord
from prospector.core.policy import CompositeWeights, FunnelPolicy, policy as default_policy
from prospector.scoring.timeliness import apply_timeliness

logger = logging.getLogger(__name__)


@dataclass
class CompositeResult:
    composite_score: float
    fit_score: float
    signal_score: float
    originality_score: float
    cost_efficiency_score: float
    reasons: List[str] = field(default_factory=list)
    breakdown: Dict[str, float] = field(default_factory=dict)


def _source_name(source: Any) -> str:
    if isinstance(source, SourceRecord):
        return source.source
    if isinstance(source, dict):
        return source.get("source", "unknown")
    return str(source)


class CompositeScorer:
    """
    composite = w_fit·fit + w_signal·signal + w_orig·originality + w_cost·cost_efficiency

    Weights default to the policy and can be overridden per client strategy.
    """

    def __init__(
        self,
        weights: Optional[CompositeWeights] = None,
        signal_priorities: Optional[Dict[str, float]] = None,
        funnel_policy: Optional[FunnelPolicy] = None,
    ):
        self.policy = funnel_policy or default_policy
        self.weights = weights or self.policy.composite_weights
        self.signal_priorities = signal_priorities or {}

    @classmethod
    def for_strategy(cls, strategy: Optional[Dict[str, Any]]) -> "CompositeScorer":
        """Build a scorer from a client's strategy overrides (weights, signal priorities)."""
        strategy = strategy or {}
        weights = None
        if strategy.get("composite_weights"):
            merged = {**default_policy.composite_weights.model_dump(), **strategy["composite_weights"]}
            weights = CompositeWeights(**merged)
        return cls(weights=weights, signal_priorities=strategy.get("signal_priorities"))

    # ──── Components ────

    def signal_score(self, signals: Sequence[Any], reference: Optional[datetime] = None) -> float:
        """Priority-weighted mean of timeliness-adjusted signal strengths."""
        if not signals:
            return 0.0
        weighted_sum = 0.0
        total_weight = 0.0
        for signal in signals:
            priority = self.signal_priorities.get(signal.signal_type)
            if priority is None:
                priority = self.policy.signal_weight(signal.signal_type)
            adjusted = apply_timeliness(float(signal.strength), getattr(signal, "event_date", None), reference)
            weighted_sum += adjusted * priority
            total_weight += priority
        return min(weighted_sum / total_weight, 1.0) if total_weight > 0 else 0.0

    def originality_score(self, sources: Iterable[Any]) -> float:
        names = [_source_name(s) for s in sources]
        if not names:
            return 0.5
        return min(sum(self.policy.originality(n) for n in names) / len(names), 1.0)

    @staticmethod
    def cost_efficiency_score(total_cost: float, provider_count: int) -> float:
        if total_cost <= 0:
            return 1.0
        if provider_count <= 0:
            return 0.5
        return min(provider_count / total_cost, 1.0)

    # ──── Composite ────

    def score(
        self,
        fit: ScoreResult,
        signals: Sequence[Any],
        sources: Sequence[Any],
        total_cost: float = 0.0,
        reference: Optional[datetime] = None,
    ) -> CompositeResult:
        reasons = list(fit.reasons)

        signal_score = self.signal_score(signals, reference)
        if signals:
            reasons.append(f"{len(signals)} buying signal(s) detected")
            strongest = max(signals, key=lambda s: float(s.strength))
            reasons.append(f"Strongest: {strongest.signal_type} ({float(strongest.strength) * 100:.0f}%)")

        originality = self.originality_score(sources)
        if originality > 0.7:
            reasons.append("High originality: found via niche sources")
        elif originality < 0.3:
            reasons.append("Low originality: found via common sources")

        cost_efficiency = self.cost_efficiency_score(total_cost, len(sources))

        w = self.weights
        composite = round(
            fit.score * w.fit
            + signal_score * w.signal
            + originality * w.originality
            + cost_efficiency * w.cost_efficiency,
            2,
        )
        return CompositeResult(
            composite_score=composite,
            fit_score=fit.score,
            signal_score=round(signal_score, 2),
            originality_score=round(originality, 2),
            cost_efficiency_score=round(cost_efficiency, 2),
            reasons=reasons,
            breakdown={
                **fit.breakdown,
                "signal": round(signal_score, 4),
                "originality": round(originality, 4),
                "cost_efficiency": round(cost_efficiency, 4),
            },
        )
