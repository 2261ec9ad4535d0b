"""Fee Engine

Pure fee computation for escrow payouts.

Two independent schedules apply to every payout:
- task tier: a step function of how many tasks the doer has completed
- value tier: a banded discount on large gross amounts

The lower of the two percentages wins. Both schedules are data, so they
can be tuned from configuration without touching the computation.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .exceptions import ValidationError

_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class TaskTier:
    """Applies while completed tasks < ``below``; ``below=None`` is the catch-all band"""

    below: int | None
    percent: Decimal


@dataclass(frozen=True)
class ValueTier:
    """Applies when gross amount >= ``min_amount``"""

    min_amount: int
    percent: Decimal


DEFAULT_TASK_TIERS: tuple[TaskTier, ...] = (
    TaskTier(below=12, percent=Decimal("20")),
    TaskTier(below=50, percent=Decimal("15")),
    TaskTier(below=200, percent=Decimal("12.5")),
    TaskTier(below=None, percent=Decimal("12")),
)

DEFAULT_VALUE_TIERS: tuple[ValueTier, ...] = (
    ValueTier(min_amount=500_000, percent=Decimal("4")),
    ValueTier(min_amount=123_000, percent=Decimal("6.5")),
    ValueTier(min_amount=47_000, percent=Decimal("8")),
    ValueTier(min_amount=20_000, percent=Decimal("10")),
)


class FeeSchedule:
    """
    Validated task-tier and value-tier tables

    Task tiers are ordered by ascending ``below`` and must end with a
    catch-all band. Their percentages never increase as experience grows.
    Value tiers are stored highest threshold first; a larger threshold
    always carries a lower percentage.
    """

    def __init__(
        self,
        task_tiers: Sequence[TaskTier] = DEFAULT_TASK_TIERS,
        value_tiers: Sequence[ValueTier] = DEFAULT_VALUE_TIERS,
    ):
        self.task_tiers = tuple(task_tiers)
        self.value_tiers = tuple(sorted(value_tiers, key=lambda t: t.min_amount, reverse=True))
        self._validate()

    def _validate(self) -> None:
        if not self.task_tiers:
            raise ValueError("at least one task tier is required")
        if self.task_tiers[-1].below is not None:
            raise ValueError("last task tier must be a catch-all (below=None)")

        previous_bound = -1
        previous_percent: Decimal | None = None
        for tier in self.task_tiers:
            if not Decimal(0) <= tier.percent <= _HUNDRED:
                raise ValueError(f"task tier percent out of range: {tier.percent}")
            if tier.below is not None:
                if tier.below <= previous_bound:
                    raise ValueError("task tier bounds must be strictly increasing")
                previous_bound = tier.below
            elif tier is not self.task_tiers[-1]:
                raise ValueError("only the last task tier may be a catch-all")
            if previous_percent is not None and tier.percent > previous_percent:
                raise ValueError("task tier percentages must be non-increasing")
            previous_percent = tier.percent

        previous_percent = None
        for tier in reversed(self.value_tiers):
            if tier.min_amount <= 0:
                raise ValueError("value tier thresholds must be positive")
            if not Decimal(0) <= tier.percent <= _HUNDRED:
                raise ValueError(f"value tier percent out of range: {tier.percent}")
            if previous_percent is not None and tier.percent >= previous_percent:
                raise ValueError("value tier percentages must decrease as thresholds grow")
            previous_percent = tier.percent

    def task_tier_percent(self, completed_tasks: int) -> Decimal:
        for tier in self.task_tiers:
            if tier.below is None or completed_tasks < tier.below:
                return tier.percent
        # unreachable: the last tier is a catch-all
        return self.task_tiers[-1].percent

    def value_tier_percent(self, gross_amount: int) -> Decimal | None:
        for tier in self.value_tiers:
            if gross_amount >= tier.min_amount:
                return tier.percent
        return None


DEFAULT_SCHEDULE = FeeSchedule()


@dataclass(frozen=True)
class FeeBreakdown:
    """Result of a fee computation. gross_amount == platform_fee + net_payout."""

    gross_amount: int
    tasks_completed: int
    task_tier_fee_percent: Decimal
    value_tier_fee_percent: Decimal | None
    applied_fee_percent: Decimal
    platform_fee: int
    net_payout: int

    def to_dict(self) -> dict:
        return {
            "gross_amount": self.gross_amount,
            "tasks_completed": self.tasks_completed,
            "task_tier_fee_percent": str(self.task_tier_fee_percent),
            "value_tier_fee_percent": (
                str(self.value_tier_fee_percent)
                if self.value_tier_fee_percent is not None
                else None
            ),
            "applied_fee_percent": str(self.applied_fee_percent),
            "platform_fee": self.platform_fee,
            "net_payout": self.net_payout,
        }


def compute_fee(
    gross_amount: int,
    doer_completed_tasks: int,
    schedule: FeeSchedule = DEFAULT_SCHEDULE,
) -> FeeBreakdown:
    """
    Compute the platform fee and net payout for an escrow

    Args:
        gross_amount: Escrowed amount in minor units (must be > 0)
        doer_completed_tasks: Tasks the doer has completed so far (>= 0)
        schedule: Fee tables to apply

    Returns:
        FeeBreakdown with the fee rounded half-up to a whole minor unit

    Raises:
        ValidationError: If inputs are out of range
    """
    if isinstance(gross_amount, bool) or not isinstance(gross_amount, int):
        raise ValidationError("gross_amount must be an integer amount in minor units")
    if gross_amount <= 0:
        raise ValidationError("gross_amount must be positive")
    if isinstance(doer_completed_tasks, bool) or not isinstance(doer_completed_tasks, int):
        raise ValidationError("doer_completed_tasks must be an integer")
    if doer_completed_tasks < 0:
        raise ValidationError("doer_completed_tasks cannot be negative")

    task_percent = schedule.task_tier_percent(doer_completed_tasks)
    value_percent = schedule.value_tier_percent(gross_amount)
    applied = task_percent if value_percent is None else min(task_percent, value_percent)

    fee = (Decimal(gross_amount) * applied / _HUNDRED).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    platform_fee = int(fee)

    return FeeBreakdown(
        gross_amount=gross_amount,
        tasks_completed=doer_completed_tasks,
        task_tier_fee_percent=task_percent,
        value_tier_fee_percent=value_percent,
        applied_fee_percent=applied,
        platform_fee=platform_fee,
        net_payout=gross_amount - platform_fee,
    )
