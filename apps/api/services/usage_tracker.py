"""Running token/cost totals for LLM completions."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from config import settings


class UsageTracker:
    """Process-wide accumulator; increments commute so interleaving is safe."""

    def __init__(
        self,
        input_cost_per_million: Optional[float] = None,
        output_cost_per_million: Optional[float] = None,
        usd_to_inr: Optional[float] = None,
    ):
        self.input_cost_per_million = (
            settings.COST_INPUT_PER_MILLION_TOKENS if input_cost_per_million is None else input_cost_per_million
        )
        self.output_cost_per_million = (
            settings.COST_OUTPUT_PER_MILLION_TOKENS if output_cost_per_million is None else output_cost_per_million
        )
        self.usd_to_inr = settings.USD_TO_INR if usd_to_inr is None else usd_to_inr
        self._lock = threading.Lock()
        self._reset_state()

    def _reset_state(self) -> None:
        self._input_tokens = 0
        self._output_tokens = 0
        self._requests = 0
        self._last_request_at: Optional[datetime] = None

    def _cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens / 1_000_000 * self.input_cost_per_million
            + output_tokens / 1_000_000 * self.output_cost_per_million
        )

    def log_usage(self, input_tokens: int, output_tokens: int) -> Dict[str, Any]:
        input_tokens = max(int(input_tokens or 0), 0)
        output_tokens = max(int(output_tokens or 0), 0)
        with self._lock:
            self._input_tokens += input_tokens
            self._output_tokens += output_tokens
            self._requests += 1
            self._last_request_at = datetime.now(timezone.utc)
        return self.get_usage()

    def get_usage(self) -> Dict[str, Any]:
        with self._lock:
            input_tokens = self._input_tokens
            output_tokens = self._output_tokens
            requests = self._requests
            last_request_at = self._last_request_at
        cost_usd = self._cost(input_tokens, output_tokens)
        return {
            "inputTokens": input_tokens,
            "outputTokens": output_tokens,
            "totalRequests": requests,
            "estimatedCost": cost_usd,
            "estimatedCostINR": cost_usd * self.usd_to_inr,
            "lastRequestAt": last_request_at.isoformat() if last_request_at else None,
        }

    def reset(self) -> None:
        with self._lock:
            self._reset_state()

    def formatted_costs(self) -> Dict[str, str]:
        usage = self.get_usage()
        requests = usage["totalRequests"]
        average = usage["estimatedCost"] / requests if requests else 0.0
        return {
            "usd": f"${usage['estimatedCost']:.4f}",
            "inr": f"₹{usage['estimatedCostINR']:.2f}",
            "avgPerRequest": f"${average:.6f}/req",
        }

    def efficiency_metrics(self) -> Dict[str, Any]:
        usage = self.get_usage()
        total_tokens = usage["inputTokens"] + usage["outputTokens"]
        requests = usage["totalRequests"]
        return {
            "totalTokens": total_tokens,
            "avgTokensPerRequest": round(total_tokens / requests) if requests else 0,
            "inputOutputRatio": (
                f"{usage['inputTokens'] / usage['outputTokens']:.2f}" if usage["outputTokens"] else "0.00"
            ),
            "costPerToken": (
                f"${usage['estimatedCost'] / total_tokens * 1000:.6f}/1K" if total_tokens else "$0.000000/1K"
            ),
        }

    def summary(self) -> Dict[str, Any]:
        return {
            "usage": self.get_usage(),
            "formatted": self.formatted_costs(),
            "efficiency": self.efficiency_metrics(),
        }


usage_tracker = UsageTracker()
