"""Paystack fee calculation and its inverse.

Fee schedule (per charge, amounts in the currency's lowest denomination):
    - percentage fee on the charged amount
    - flat additional charge once the amount is above the threshold
    - the total fee never exceeds the cap

Default (local NGN cards):
    - 1.5%, plus 100 NGN (10000 kobo) above 2,500 NGN (250000 kobo)
    - cap 2,000 NGN (200000 kobo)

Usage::

    fees = (
        FeeCalculator()
        .with_percentage(0.035)
        .with_additional_charge(0)
        .with_cap(1_000_000_000_000)
        .with_threshold(0)
    )
    fees.calculate_for(100000)  # fee charged on 1000 USD
    fees.add_to(5000)  # amount to charge to be settled 50 USD
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Optional, Union

import structlog

# Routed through stdlib logging so the host decides what is emitted.
logger = structlog.wrap_logger(
    logging.getLogger(__name__), wrapper_class=structlog.stdlib.BoundLogger
)

Number = Union[int, float, Decimal]

DEFAULT_LOCAL_NGN_PERCENTAGE = Decimal("0.015")
DEFAULT_LOCAL_NGN_ADDITIONAL_CHARGE = 10000
DEFAULT_LOCAL_NGN_THRESHOLD = 250000
DEFAULT_LOCAL_NGN_CAP = 200000

__all__ = [
    "DEFAULT_LOCAL_NGN_ADDITIONAL_CHARGE",
    "DEFAULT_LOCAL_NGN_CAP",
    "DEFAULT_LOCAL_NGN_PERCENTAGE",
    "DEFAULT_LOCAL_NGN_THRESHOLD",
    "FeeCalculator",
    "FeeSchedule",
    "INTERNATIONAL_USD",
    "InvalidParameterError",
    "LOCAL_NGN",
]


class InvalidParameterError(ValueError):
    """Raised when a fee parameter or amount is outside its domain."""

    def __init__(self, name: str, value: object, requirement: str):
        self.name = name
        self.value = value
        super().__init__(f"{name} must be {requirement}, got {value!r}")


def _reject(name: str, value: object, requirement: str) -> InvalidParameterError:
    logger.warning("fee.invalid_parameter", parameter=name, value=repr(value))
    return InvalidParameterError(name, value, requirement)


def _validate_percentage(percentage: Number) -> Decimal:
    requirement = ">= 0 and < 1"
    if isinstance(percentage, bool) or not isinstance(percentage, (int, float, Decimal)):
        raise _reject("percentage", percentage, "a number " + requirement)

    if isinstance(percentage, float):
        value = Decimal(str(percentage))
    else:
        value = Decimal(percentage)
    if not value.is_finite():
        raise _reject("percentage", percentage, "a finite number " + requirement)
    if not 0 <= value < 1:
        raise _reject("percentage", percentage, requirement)
    return value


def _validate_whole(name: str, value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise _reject(name, value, "a non-negative integer")
    return value


def _validate_cap(cap: int) -> int:
    if isinstance(cap, bool) or not isinstance(cap, int) or cap < 1:
        raise _reject("cap", cap, "a positive integer")
    return cap


def _precision(*amounts: int) -> int:
    """Context precision that keeps every digit of the largest amount."""
    return 28 + max(amount.bit_length() for amount in amounts) // 3 + 1


@dataclass(frozen=True)
class FeeSchedule:
    """Snapshot of the four parameters a FeeCalculator works from."""

    percentage: Decimal = DEFAULT_LOCAL_NGN_PERCENTAGE
    additional_charge: int = DEFAULT_LOCAL_NGN_ADDITIONAL_CHARGE
    threshold: int = DEFAULT_LOCAL_NGN_THRESHOLD
    cap: int = DEFAULT_LOCAL_NGN_CAP

    def __post_init__(self):
        object.__setattr__(self, "percentage", _validate_percentage(self.percentage))
        _validate_whole("additional_charge", self.additional_charge)
        _validate_whole("threshold", self.threshold)
        _validate_cap(self.cap)


LOCAL_NGN = FeeSchedule()

# No cap on USD payments, so the cap is set arbitrarily high.
INTERNATIONAL_USD = FeeSchedule(
    percentage=Decimal("0.035"),
    additional_charge=0,
    threshold=0,
    cap=1_000_000_000_000,
)


class FeeCalculator:
    """
    Fees for a single percentage + flat charge + cap schedule.

    Setters validate their input and return the calculator, so a schedule
    can be built as one chained expression. Any parameter left unset keeps
    its LOCAL_NGN default.
    """

    def __init__(self, schedule: Optional[FeeSchedule] = None):
        if schedule is None:
            schedule = LOCAL_NGN
        self.percentage = schedule.percentage
        self.additional_charge = schedule.additional_charge
        self.threshold = schedule.threshold
        self.cap = schedule.cap

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(percentage={self.percentage}, "
            f"additional_charge={self.additional_charge}, "
            f"threshold={self.threshold}, cap={self.cap})"
        )

    @property
    def schedule(self) -> FeeSchedule:
        return FeeSchedule(
            percentage=self.percentage,
            additional_charge=self.additional_charge,
            threshold=self.threshold,
            cap=self.cap,
        )

    # -----------------------------
    # Boundaries used by add_to
    # -----------------------------
    @property
    def charge_divider(self) -> Decimal:
        return 1 - self.percentage

    @property
    def crossover(self) -> Decimal:
        """Net amount above which the additional charge applies."""
        return self.threshold * self.charge_divider - self.additional_charge

    @property
    def flatline_plus_charge(self) -> Decimal:
        """Gross amount at which the percentage fee alone reaches the cap."""
        if self.percentage == 0:
            return Decimal("Infinity")
        return (self.cap - self.additional_charge) / self.percentage

    @property
    def flatline(self) -> Decimal:
        """Net amount above which the fee is always the cap."""
        return self.flatline_plus_charge - self.cap

    # -----------------------------
    # Configuration
    # -----------------------------
    def with_percentage(self, percentage: Number) -> "FeeCalculator":
        """Set the percentage, a number from 0 up to (not including) 1."""
        self.percentage = _validate_percentage(percentage)
        return self._updated("percentage")

    def with_additional_charge(self, additional_charge: int) -> "FeeCalculator":
        """Set the flat charge added once an amount is over the threshold."""
        self.additional_charge = _validate_whole("additional_charge", additional_charge)
        return self._updated("additional_charge")

    def with_threshold(self, threshold: int) -> "FeeCalculator":
        """Set the amount beyond which the additional charge is added."""
        self.threshold = _validate_whole("threshold", threshold)
        return self._updated("threshold")

    def with_cap(self, cap: int) -> "FeeCalculator":
        """Set the maximum fee ever charged."""
        self.cap = _validate_cap(cap)
        return self._updated("cap")

    def _updated(self, field: str) -> "FeeCalculator":
        logger.debug("fee.schedule_updated", field=field, value=getattr(self, field))
        return self

    # -----------------------------
    # Calculations
    # -----------------------------
    def calculate_for(self, amount: int) -> int:
        """
        Calculate the fee deducted when `amount` is charged.

        Args:
            amount: Amount charged, in lower denomination (e.g. kobo)

        Returns:
            Fee in lower denomination, never more than the cap
        """
        _validate_whole("amount", amount)

        flat = self.additional_charge if amount > self.threshold else 0
        with localcontext() as ctx:
            ctx.prec = _precision(amount, flat)
            fee = math.ceil(self.percentage * amount + flat)
        capped = fee > self.cap
        fee = min(fee, self.cap)

        logger.debug("fee.calculated", amount=amount, fee=fee, capped=capped)
        return fee

    def net_of(self, amount: int) -> int:
        """Amount settled after the fee on `amount` is deducted."""
        return amount - self.calculate_for(amount)

    def add_to(self, net_amount: int) -> int:
        """
        Calculate the amount to charge so that `net_amount` is settled.

        The capped fee is piecewise in the charged amount, so the inverse
        is picked by comparing `net_amount` against `flatline` (fee is the
        cap) and `crossover` (additional charge applies).

        Args:
            net_amount: Amount to be settled after fees, in lower denomination

        Returns:
            Amount to charge, in lower denomination

        Example:
            FeeCalculator().add_to(10000)  # 10153, to be settled 100 NGN
        """
        _validate_whole("net_amount", net_amount)

        with localcontext() as ctx:
            ctx.prec = _precision(net_amount, self.additional_charge, self.threshold, self.cap)
            if self.percentage == 0:
                regime = "flat_only"
                gross = net_amount + min(self.cap, self.additional_charge)
            elif net_amount > self.flatline:
                regime = "capped"
                gross = net_amount + self.cap
            elif net_amount > self.crossover:
                regime = "threshold_crossed"
                gross = math.ceil((net_amount + self.additional_charge) / self.charge_divider)
            else:
                regime = "percentage_only"
                # A zero net still needs a chargeable amount.
                gross = math.ceil(net_amount / self.charge_divider) or 1

        logger.debug("fee.added", net_amount=net_amount, gross_amount=gross, regime=regime)
        return gross
