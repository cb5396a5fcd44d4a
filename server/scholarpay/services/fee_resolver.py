"""
scholarpay/services/fee_resolver.py
Canonical fee amount per (student, fee type)

Precedence, per fee type:
    1. observed real-paid amount, when within the plausibility band of the expected amount
    2. administrator override
    3. plan-default expected amount
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union
import logging

from scholarpay.models.schemas import (
    FeeSchedule, FeeType, PlanGeneration, StudentFeeContext,
)

logger = logging.getLogger(__name__)

SELECTION_PROCESS_BASE = {PlanGeneration.SIMPLIFIED: 350, PlanGeneration.LEGACY: 400}
SCHOLARSHIP_BASE = {PlanGeneration.SIMPLIFIED: 550, PlanGeneration.LEGACY: 900}
SELECTION_PROCESS_PER_DEPENDENT = 150
APPLICATION_PER_DEPENDENT = 100

# Raw scholarship application fees above this are already stored in cents
CENTS_THRESHOLD = Decimal(1000)

Number = Union[int, float, Decimal, str]


def to_cents(dollars: Number) -> int:
    """Dollars to integer cents, rounding half up"""
    return int((Decimal(str(dollars)) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def plan_generation(value: Optional[str]) -> PlanGeneration:
    """Plan tag to PlanGeneration; anything but 'simplified' is legacy"""
    if isinstance(value, PlanGeneration):
        return value
    if value and str(value).strip().lower() == PlanGeneration.SIMPLIFIED.value:
        return PlanGeneration.SIMPLIFIED
    return PlanGeneration.LEGACY


class FeeResolver:
    """Resolves one canonical amount in cents for a fee type and student"""

    def __init__(self, schedule: Optional[FeeSchedule] = None):
        self.schedule = schedule or FeeSchedule()

    def expected_amount(self, fee_type: FeeType, ctx: StudentFeeContext) -> int:
        """Plan-default amount in cents, dependent-adjusted where the fee type calls for it"""
        dependents = max(ctx.dependents, 0)
        legacy = ctx.plan == PlanGeneration.LEGACY

        if fee_type == FeeType.SELECTION_PROCESS:
            amount = SELECTION_PROCESS_BASE[ctx.plan]
            if legacy:
                amount += dependents * SELECTION_PROCESS_PER_DEPENDENT
            return to_cents(amount)

        if fee_type == FeeType.SCHOLARSHIP:
            return to_cents(SCHOLARSHIP_BASE[ctx.plan])

        if fee_type == FeeType.APPLICATION:
            raw = ctx.scholarship_application_fee
            if raw:
                cents = int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP)) if raw > CENTS_THRESHOLD else to_cents(raw)
                if legacy:
                    cents += to_cents(dependents * APPLICATION_PER_DEPENDENT)
                return cents
            return to_cents(self.schedule.default_application_fee) + to_cents(dependents * APPLICATION_PER_DEPENDENT)

        return to_cents(self.schedule.default_i20_control_fee)

    def is_plausible(self, real_cents: int, expected_cents: int) -> bool:
        """Inclusive band of +/- tolerance around the expected amount"""
        tolerance = Decimal(str(self.schedule.plausibility_tolerance))
        expected = Decimal(expected_cents)
        return expected * (1 - tolerance) <= real_cents <= expected * (1 + tolerance)

    def resolve(self, fee_type: FeeType, ctx: StudentFeeContext) -> int:
        expected = self.expected_amount(fee_type, ctx)

        if ctx.real_paid is not None:
            real_cents = to_cents(ctx.real_paid)
            if self.is_plausible(real_cents, expected):
                return real_cents
            logger.warning(
                f"Ignoring implausible real payment for user {ctx.user_id}: "
                f"{fee_type.value} paid {real_cents} cents, expected {expected} cents"
            )

        if ctx.override is not None:
            return to_cents(ctx.override)

        return expected


def resolve_fee(fee_type: FeeType, ctx: StudentFeeContext, schedule: Optional[FeeSchedule] = None) -> int:
    """Shortcut for FeeResolver(schedule).resolve(...)"""
    return FeeResolver(schedule).resolve(fee_type, ctx)
