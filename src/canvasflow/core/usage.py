"""Usage ledger, model pricing and budgets for graph runs.

The ledger accumulates prompt/completion tokens and derived cost per
model name. A Budget optionally caps what a run may spend:
- Total tokens
- Cost in dollars
- Provider calls
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from canvasflow.core.errors import CanvasflowError
from canvasflow.core.types import ModelUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelPricing:
    """Per-token prices for one model, in dollars.

    Attributes:
        name: Model identity as sent to the provider.
        prompt_token_price: Price of one prompt token.
        completion_token_price: Price of one completion token.
    """

    name: str
    prompt_token_price: float = 0.0
    completion_token_price: float = 0.0

    def cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Cost of a single call."""
        return (
            prompt_tokens * self.prompt_token_price
            + completion_tokens * self.completion_token_price
        )


# Dollars per token, from the providers' published per-million prices.
DEFAULT_PRICING: dict[str, ModelPricing] = {
    "gpt-4o": ModelPricing("gpt-4o", 2.5e-06, 1.0e-05),
    "gpt-4o-mini": ModelPricing("gpt-4o-mini", 1.5e-07, 6.0e-07),
    "gpt-4.1": ModelPricing("gpt-4.1", 2.0e-06, 8.0e-06),
    "gpt-4.1-mini": ModelPricing("gpt-4.1-mini", 4.0e-07, 1.6e-06),
    "gpt-4": ModelPricing("gpt-4", 3.0e-05, 6.0e-05),
    "gpt-3.5-turbo": ModelPricing("gpt-3.5-turbo", 5.0e-07, 1.5e-06),
}


@dataclass
class Budget:
    """Spending limits for a run.

    All limits are optional - only set limits are enforced.

    Attributes:
        max_tokens: Maximum prompt + completion tokens.
        max_cost_dollars: Maximum cost in dollars.
        max_calls: Maximum number of provider calls.

    Example:
        # Stop once a run has spent 50 cents
        budget = Budget(max_cost_dollars=0.5)
    """

    max_tokens: int | None = None
    max_cost_dollars: float | None = None
    max_calls: int | None = None

    def is_limited(self) -> bool:
        """Check if any limits are set."""
        return any(
            [
                self.max_tokens is not None,
                self.max_cost_dollars is not None,
                self.max_calls is not None,
            ]
        )


class BudgetExceededError(CanvasflowError):
    """Raised when a run exceeds its budget.

    Attributes:
        reason: Human-readable explanation of which limit was hit.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


@dataclass
class UsageLedger:
    """Usage totals keyed by model name.

    Models missing from the pricing table are recorded at zero cost.
    """

    pricing: dict[str, ModelPricing] = field(default_factory=lambda: dict(DEFAULT_PRICING))
    models: dict[str, ModelUsage] = field(default_factory=dict)
    calls: int = 0

    def record(self, model: str, prompt_tokens: int, completion_tokens: int) -> ModelUsage:
        """Add one provider call to the ledger.

        Args:
            model: Model name reported by the provider.
            prompt_tokens: Prompt tokens consumed.
            completion_tokens: Completion tokens generated.

        Returns:
            Updated totals for the model.
        """
        pricing = self.pricing.get(model)
        if pricing is None:
            logger.debug("usage_unpriced_model: model=%s", model)
            pricing = ModelPricing(model)

        usage = self.models.setdefault(model, ModelUsage())
        usage.prompt_tokens += prompt_tokens
        usage.completion_tokens += completion_tokens
        usage.total_cost += pricing.cost(prompt_tokens, completion_tokens)
        self.calls += 1
        return usage

    @property
    def total_tokens(self) -> int:
        return sum(u.prompt_tokens + u.completion_tokens for u in self.models.values())

    @property
    def total_cost(self) -> float:
        return sum(u.total_cost for u in self.models.values())

    def exceeds(self, budget: Budget) -> tuple[bool, str | None]:
        """Check if usage exceeds budget.

        Returns:
            Tuple of (exceeded, reason).
        """
        if budget.max_tokens is not None and self.total_tokens > budget.max_tokens:
            return True, f"Token limit exceeded: {self.total_tokens}/{budget.max_tokens}"

        if budget.max_calls is not None and self.calls > budget.max_calls:
            return True, f"Call limit exceeded: {self.calls}/{budget.max_calls}"

        if budget.max_cost_dollars is not None and self.total_cost > budget.max_cost_dollars:
            return (
                True,
                f"Cost limit exceeded: ${self.total_cost:.4f}/${budget.max_cost_dollars:.4f}",
            )

        return False, None

    def snapshot(self) -> dict[str, ModelUsage]:
        """Copy of the per-model totals."""
        return {
            model: ModelUsage(u.prompt_tokens, u.completion_tokens, u.total_cost)
            for model, u in self.models.items()
        }

    def clear(self) -> None:
        self.models.clear()
        self.calls = 0
