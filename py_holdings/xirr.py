"""
XIRR solver: annualized money-weighted return of irregular cashflows.

NPV(rate) = sum(amount / (1 + rate) ** (days / 365)), measured from the
earliest cashflow. The root is found by bisection on [-0.9999, 100]; the
search assumes NPV decreases with the rate, which holds for the usual
outflows-then-inflow series. Series whose amounts change sign more than once
can have several roots and are flagged.
"""
import math
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from .domain import CashflowPoint
from .errors import UnsolvableReturnError

DAYS_PER_YEAR = 365.0
LOWER_BOUND = -0.9999
UPPER_BOUND = 100.0
MAX_ITERATIONS = 100
TOLERANCE = 1e-6


@dataclass
class XirrResult:
    rate: Optional[float]  # percent, None when unavailable
    iterations: int = 0
    converged: bool = False
    sign_changes: int = 0
    error: Optional[UnsolvableReturnError] = None

    @property
    def multiple_roots_possible(self) -> bool:
        return self.sign_changes > 1


def _valid_flows(cashflows: Sequence[CashflowPoint]) -> List[CashflowPoint]:
    flows = []
    for cf in cashflows or []:
        try:
            amount = float(cf.amount)
        except (TypeError, ValueError):
            continue
        if not math.isfinite(amount) or amount == 0:
            continue
        if not isinstance(cf.date, datetime):
            continue
        flows.append(CashflowPoint(amount=amount, date=cf.date))
    flows.sort(key=lambda cf: cf.date)
    return flows


def count_sign_changes(amounts: Sequence[float]) -> int:
    signs = [a > 0 for a in amounts if a != 0]
    return sum(1 for prev, curr in zip(signs, signs[1:]) if prev != curr)


def net_present_value(rate: float, amounts: np.ndarray, years: np.ndarray) -> float:
    with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
        return float(np.sum(amounts / np.power(1.0 + rate, years)))


def solve_detailed(cashflows: Sequence[CashflowPoint]) -> XirrResult:
    flows = _valid_flows(cashflows)
    if len(flows) < 2:
        return XirrResult(rate=None)

    base_date = flows[0].date
    amounts = np.array([cf.amount for cf in flows], dtype=float)
    years = np.array([(cf.date - base_date).total_seconds() / 86400.0 / DAYS_PER_YEAR for cf in flows])
    sign_changes = count_sign_changes(amounts.tolist())

    low, high = LOWER_BOUND, UPPER_BOUND
    npv_low = net_present_value(low, amounts, years)
    npv_high = net_present_value(high, amounts, years)
    if not (math.isfinite(npv_low) and math.isfinite(npv_high)) or npv_low * npv_high > 0:
        error = UnsolvableReturnError(f"no root bracketed in [{low}, {high}] for {len(flows)} cashflows")
        logging.debug(f"XIRR: {error}")
        return XirrResult(rate=None, sign_changes=sign_changes, error=error)

    if sign_changes > 1:
        logging.warning(f"XIRR: cashflows change sign {sign_changes} times, rate may not be unique")

    mid = 0.0
    for iteration in range(1, MAX_ITERATIONS + 1):
        mid = (low + high) / 2
        value = net_present_value(mid, amounts, years)
        if abs(value) < TOLERANCE:
            return XirrResult(rate=mid * 100, iterations=iteration, converged=True, sign_changes=sign_changes)
        if value > 0:
            low = mid
        else:
            high = mid

    return XirrResult(rate=mid * 100, iterations=MAX_ITERATIONS, converged=False, sign_changes=sign_changes)


def solve(cashflows: Sequence[CashflowPoint]) -> Optional[float]:
    """
    Returns the XIRR in percent, or None when it cannot be determined
    (fewer than two usable cashflows, or no root within the bounds).
    None means "unavailable" and must not be read as 0%.
    """
    return solve_detailed(cashflows).rate
