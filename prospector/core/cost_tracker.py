"""
Cost tracking for LLM completions.
Aggregates estimated spend per model across the process.
"""
import logging
import threading
from typing import Dict, Any, List

logger = logging.getLogger(__name__)


class CostTracker:
    """
    Thread-safe singleton to track estimated LLM costs.
    """
    _instance = None
    _lock = threading.Lock()

    # Cost per 1k tokens (approximate, USD). Matched by substring of the model name.
    COSTS = {
        "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
        "gpt-4o": {"input": 0.0025, "output": 0.01},
        "gpt-4": {"input": 0.03, "output": 0.06},
        "claude-3-5-haiku": {"input": 0.0008, "output": 0.004},
        "claude-3-haiku": {"input": 0.00025, "output": 0.00125},
        "sonnet": {"input": 0.003, "output": 0.015},
    }

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(CostTracker, cls).__new__(cls)
                    cls._instance.total_cost_usd = 0.0
                    cls._instance.usage_log = []
        return cls._instance

    def log_usage(self, model: str, input_tokens: int, output_tokens: int, purpose: str = "unknown") -> float:
        """
        Log token usage, update the running total and return this call's cost.
        """
        model_key = next((k for k in self.COSTS if k in model.lower()), None)
        cost = 0.0

        if model_key:
            rates = self.COSTS[model_key]
            cost = (input_tokens / 1000 * rates["input"]) + (output_tokens / 1000 * rates["output"])

        with self._lock:
            self.total_cost_usd += cost
            self.usage_log.append({
                "model": model,
                "input": input_tokens,
                "output": output_tokens,
                "cost": cost,
                "purpose": purpose,
            })

        if cost > 0.10:
            logger.info(f"High cost LLM call ({model}, {purpose}): ${cost:.4f}. Total session: ${self.total_cost_usd:.4f}")
        return cost

    def get_total_cost(self) -> float:
        return self.total_cost_usd

    def cost_by_purpose(self) -> Dict[str, float]:
        totals: Dict[str, float] = {}
        for entry in self.usage_log:
            totals[entry["purpose"]] = totals.get(entry["purpose"], 0.0) + entry["cost"]
        return totals

    def reset(self):
        with self._lock:
            self.total_cost_usd = 0.0
            self.usage_log = []


# Global instance
cost_tracker = CostTracker()
