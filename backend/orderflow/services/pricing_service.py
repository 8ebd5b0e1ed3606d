# Overview: Pure pricing rules for installment plans; no database access.

"""
Plan Pricing

WHY: The financed total of an order depends only on the base amount
(sum of order lines), the selected plan and the payment method. Keeping
it a pure function of immutable inputs means the total can be recomputed
whenever any input changes and always comes out the same.

RULES:
- payment method other than "installment", or no plan: total = base
- fixed: total = base * (1 + rate); interest on the full base
- flexible with advance A: remaining = base - A,
  total = remaining + remaining * rate + A
- flexible without advance: same as fixed

Amounts are Decimals and are NOT rounded here. Rounding to cents happens
when a value is written to an order or a payment.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from ..models.financing import PLAN_TYPE_FIXED, PLAN_TYPE_FLEXIBLE, VALID_PLAN_TYPES
from ..validation import TWOPLACES, ValidationError, money, to_decimal


PAYMENT_METHOD_CASH = "cash"
PAYMENT_METHOD_CREDIT_CARD = "credit_card"
PAYMENT_METHOD_DEBIT_CARD = "debit_card"
PAYMENT_METHOD_BANK_TRANSFER = "bank_transfer"
PAYMENT_METHOD_INSTALLMENT = "installment"

VALID_ORDER_PAYMENT_METHODS = [
    PAYMENT_METHOD_CASH,
    PAYMENT_METHOD_CREDIT_CARD,
    PAYMENT_METHOD_DEBIT_CARD,
    PAYMENT_METHOD_BANK_TRANSFER,
    PAYMENT_METHOD_INSTALLMENT,
]

ZERO = Decimal("0")


class PlanError(ValidationError):
    """Raised when a plan definition is not usable for pricing."""


# =============================================================================
# PLAN STRATEGIES
# =============================================================================

@dataclass(frozen=True)
class FixedStrategy:
    interest_rate: Decimal


@dataclass(frozen=True)
class FlexibleStrategy:
    interest_rate: Decimal
    advance_amount: Decimal


PlanStrategy = Union[FixedStrategy, FlexibleStrategy]


@dataclass(frozen=True)
class PlanSnapshot:
    """
    Read-only copy of an installment plan taken at call time.

    Pricing and payment linkage only ever see snapshots, never live ORM
    rows, so a plan edited mid-submission cannot change a total that is
    already being computed.
    """
    id: Optional[int]
    name: str
    plan_type: str
    duration: int
    interest_rate: Decimal
    grace_period: int = 0
    advance_payment_amount: Optional[Decimal] = None

    def __post_init__(self):
        if self.plan_type not in VALID_PLAN_TYPES:
            raise PlanError(f"Invalid plan type: {self.plan_type}. Must be one of {VALID_PLAN_TYPES}")
        if self.duration is None or self.duration < 1:
            raise PlanError("Plan duration must be at least 1 period")
        if self.interest_rate < ZERO or self.interest_rate > Decimal("1"):
            raise PlanError("Plan interest rate must be a fraction between 0 and 1")
        if self.plan_type == PLAN_TYPE_FIXED and self.advance_payment_amount is not None:
            raise PlanError("Fixed plans cannot carry an advance payment")

    @classmethod
    def from_model(cls, plan) -> "PlanSnapshot":
        advance = plan.advance_payment_amount
        return cls(
            id=plan.id,
            name=plan.name,
            plan_type=plan.plan_type,
            duration=plan.duration,
            interest_rate=to_decimal(plan.interest_rate, "interest_rate"),
            grace_period=plan.grace_period or 0,
            advance_payment_amount=to_decimal(advance, "advance_payment_amount") if advance is not None else None,
        )

    @property
    def strategy(self) -> PlanStrategy:
        """
        Tagged pricing variant.

        A flexible plan without a positive advance has nothing to separate
        out and prices (and links its first payment) like a fixed plan.
        """
        if (
            self.plan_type == PLAN_TYPE_FLEXIBLE
            and self.advance_payment_amount is not None
            and self.advance_payment_amount > ZERO
        ):
            return FlexibleStrategy(self.interest_rate, self.advance_payment_amount)
        return FixedStrategy(self.interest_rate)


def find_plan(plans: Iterable[PlanSnapshot], plan_id) -> Optional[PlanSnapshot]:
    for plan in plans:
        if plan.id == plan_id:
            return plan
    return None


# =============================================================================
# TOTALS
# =============================================================================

@dataclass(frozen=True)
class PriceBreakdown:
    base_amount: Decimal
    principal: Decimal  # amount interest is charged on
    advance: Decimal
    interest: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        # Display values only; stored amounts are rounded where they are written
        return {
            "base_amount": str(money(self.base_amount)),
            "principal": str(money(self.principal)),
            "advance": str(money(self.advance)),
            "interest": str(money(self.interest)),
            "total": str(money(self.total)),
        }


def price_breakdown(
    base_amount,
    plan: Optional[PlanSnapshot],
    payment_method: Optional[str] = PAYMENT_METHOD_INSTALLMENT,
) -> PriceBreakdown:
    """Split the payable total into principal, advance and interest."""
    base = to_decimal(base_amount, "base_amount")

    if plan is None or payment_method != PAYMENT_METHOD_INSTALLMENT:
        return PriceBreakdown(base, base, ZERO, ZERO, base)

    strategy = plan.strategy
    if isinstance(strategy, FlexibleStrategy):
        remaining = base - strategy.advance_amount
        interest = remaining * strategy.interest_rate
        total = remaining + interest + strategy.advance_amount
        return PriceBreakdown(base, remaining, strategy.advance_amount, interest, total)
    if isinstance(strategy, FixedStrategy):
        total = base * (1 + strategy.interest_rate)
        return PriceBreakdown(base, base, ZERO, base * strategy.interest_rate, total)
    raise TypeError(f"Unhandled plan strategy: {strategy!r}")


def compute_total(
    base_amount,
    plan: Optional[PlanSnapshot],
    payment_method: Optional[str] = PAYMENT_METHOD_INSTALLMENT,
) -> Decimal:
    """Total payable for `base_amount` under `plan`."""
    return price_breakdown(base_amount, plan, payment_method).total


def suggested_first_payment(plan: PlanSnapshot, computed_total) -> Decimal:
    """
    Amount collected when a financed order is confirmed.

    - flexible (with advance): the advance amount
    - fixed: one period of the financed total, rounded to cents
    """
    strategy = plan.strategy
    if isinstance(strategy, FlexibleStrategy):
        return strategy.advance_amount
    total = to_decimal(computed_total, "computed_total")
    return (total / plan.duration).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
