"""
CPPI Policy Engine

Constant Proportion Portfolio Insurance across five sleeves. Given the
sleeve equities and a date, the engine derives how much of the portfolio may
be at risk, how it should be split between sleeves, how a weekly deposit is
allocated without selling, and how many dollars each sleeve may risk on new
trades.

Mathematical Framework:
    weeks          = floor(days since start / 7)
    invested       = initial_capital + weekly_deposit x weeks
    floor          = floor_pct x invested
    cushion        = max(total - floor, 0)
    risky_weight   = min(M x cushion / total, 1)          (0 when total <= 0)

    Target weights:
        debit, credit, straddle = risky_weight x split fraction
        hedge                   = hedge_fixed (independent of risky_weight)
        collar                  = max(0, 1 - others)        (ballast)

    The risky share is capped at 1 - hedge_fixed when forming targets so the
    five targets always sum to one; below the cap the formulas above apply
    unchanged.

    Rebalance needed iff at least ``rebalance_every_weeks`` weeks have passed
    since the last executed rebalance and some |current - target| exceeds
    ``drift_band_abs``.

    Risk budget = equity x base_risk_pct x risk_scale (1.0 for collar),
    x4 on a monthly cadence, floored at the sleeve's minimum ticket.

State:
    The engine is immutable. The week of the last executed rebalance is an
    input to ``compute_metrics`` and ``mark_rebalanced`` returns the new
    value; the caller owns it.

Usage:
    engine = CPPIEngine(CPPIConfig(), start_date=date(2024, 1, 1))
    metrics = engine.compute_metrics(equities, date(2024, 3, 4), last_rebalance_week)
    if metrics.needs_rebalance:
        last_rebalance_week = engine.mark_rebalanced(metrics)

References:
    - Black, F., & Perold, A. (1992). Theory of Constant Proportion Portfolio
      Insurance. Journal of Economic Dynamics and Control.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from cppi_backtester.policy.sleeves import (
    Cadence,
    Sleeve,
    SleeveEquities,
    SleeveWeights,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

DEFAULT_INITIAL_CAPITAL = 10_000.0
WEEKS_PER_CADENCE_CYCLE = 4
MONTHLY_BUDGET_MULTIPLIER = 4.0
SPLIT_TOLERANCE = 1e-3


# =============================================================================
# Exceptions
# =============================================================================

class CPPIError(Exception):
    """Base exception for CPPI policy errors."""
    pass


class CPPIConfigError(CPPIError):
    """Exception raised for an invalid CPPI configuration."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class RiskySplit:
    """Split of the risky weight between risky sleeves, plus the fixed hedge."""

    debit: float = 0.60
    credit: float = 0.15
    straddle: float = 0.25
    hedge_fixed: float = 0.02

    @property
    def total(self) -> float:
        return self.debit + self.credit + self.straddle


@dataclass(frozen=True)
class BaseRiskPct:
    """Fraction of sleeve equity risked per cadence period."""

    debit: float = 0.06
    credit: float = 0.02
    straddle: float = 0.04
    hedge: float = 0.01
    collar: float = 0.0


@dataclass(frozen=True)
class MinTickets:
    """Minimum dollar risk budget per sleeve (collar has none)."""

    debit: float = 30.0
    credit: float = 100.0
    straddle: float = 50.0
    hedge: float = 5.0


@dataclass(frozen=True)
class CPPIConfig:
    """Complete CPPI policy configuration."""

    initial_capital: float = DEFAULT_INITIAL_CAPITAL
    floor_pct: float = 0.85
    multiplier: float = 4.0
    risk_scale: float = 1.25
    risky_split: RiskySplit = field(default_factory=RiskySplit)
    drift_band_abs: float = 0.10
    rebalance_every_weeks: int = 4
    weekly_deposit: float = 50.0
    base_risk_pct: BaseRiskPct = field(default_factory=BaseRiskPct)
    min_tickets: MinTickets = field(default_factory=MinTickets)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'initial_capital': self.initial_capital,
            'floor_pct': self.floor_pct,
            'multiplier': self.multiplier,
            'risk_scale': self.risk_scale,
            'risky_split': vars_of(self.risky_split),
            'drift_band_abs': self.drift_band_abs,
            'rebalance_every_weeks': self.rebalance_every_weeks,
            'weekly_deposit': self.weekly_deposit,
            'base_risk_pct': vars_of(self.base_risk_pct),
            'min_tickets': vars_of(self.min_tickets),
        }


def vars_of(obj: Any) -> Dict[str, Any]:
    """Field dictionary of a flat dataclass."""
    return {name: getattr(obj, name) for name in obj.__dataclass_fields__}


def cppi_config_errors(config: CPPIConfig) -> List[str]:
    """
    Validate a CPPI configuration.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if config.initial_capital <= 0:
        errors.append("cppi.initial_capital must be positive")
    if not 0 < config.floor_pct <= 1:
        errors.append(f"cppi.floor_pct must be in (0, 1], got {config.floor_pct}")
    if config.multiplier <= 0:
        errors.append(f"cppi.multiplier must be positive, got {config.multiplier}")
    if config.risk_scale <= 0:
        errors.append(f"cppi.risk_scale must be positive, got {config.risk_scale}")

    split = config.risky_split
    for name in ('debit', 'credit', 'straddle'):
        if getattr(split, name) < 0:
            errors.append(f"cppi.risky_split.{name} cannot be negative")
    if abs(split.total - 1.0) > SPLIT_TOLERANCE:
        errors.append(
            f"cppi.risky_split debit+credit+straddle must sum to 1.0, got {split.total:.4f}"
        )
    if not 0 <= split.hedge_fixed < 1:
        errors.append(f"cppi.risky_split.hedge_fixed must be in [0, 1), got {split.hedge_fixed}")

    if config.drift_band_abs <= 0:
        errors.append("cppi.drift_band_abs must be positive")
    if config.rebalance_every_weeks < 0:
        errors.append("cppi.rebalance_every_weeks cannot be negative")
    if config.weekly_deposit < 0:
        errors.append("cppi.weekly_deposit cannot be negative")

    risk = config.base_risk_pct
    for name in ('debit', 'credit', 'straddle', 'hedge'):
        if getattr(risk, name) <= 0:
            errors.append(f"cppi.base_risk_pct.{name} must be positive")
    if risk.collar < 0:
        errors.append("cppi.base_risk_pct.collar cannot be negative")

    for name in ('debit', 'credit', 'straddle', 'hedge'):
        if getattr(config.min_tickets, name) < 0:
            errors.append(f"cppi.min_tickets.{name} cannot be negative")

    return errors


# =============================================================================
# Metrics
# =============================================================================

@dataclass(frozen=True)
class CPPIMetrics:
    """Snapshot of the policy for one (equities, date) observation."""

    invested_to_date: float
    floor: float
    cushion: float
    risky_weight: float
    target_weights: SleeveWeights
    current_weights: SleeveWeights
    needs_rebalance: bool
    weeks_since_start: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'invested_to_date': self.invested_to_date,
            'floor': self.floor,
            'cushion': self.cushion,
            'risky_weight': self.risky_weight,
            'target_weights': self.target_weights.to_dict(),
            'current_weights': self.current_weights.to_dict(),
            'needs_rebalance': self.needs_rebalance,
            'weeks_since_start': self.weeks_since_start,
        }


# =============================================================================
# CPPIEngine Class
# =============================================================================

class CPPIEngine:
    """
    Stateless CPPI policy over five sleeves.

    Attributes:
        config (CPPIConfig): Validated policy configuration
        start_date (date): Date from which weeks are counted

    Example:
        >>> engine = CPPIEngine(CPPIConfig(), start_date=date(2024, 1, 1))
        >>> equities = SleeveEquities(2000, 1500, 1000, 4000, 500)
        >>> m = engine.compute_metrics(equities, date(2024, 1, 1))
        >>> round(m.risky_weight, 4)
        0.2222
    """

    __slots__ = ('_config', '_start_date')

    def __init__(
        self,
        config: Optional[CPPIConfig] = None,
        start_date: Optional[date] = None
    ) -> None:
        """
        Raises:
            CPPIConfigError: If the configuration is invalid
        """
        config = config or CPPIConfig()
        errors = cppi_config_errors(config)
        if errors:
            raise CPPIConfigError(
                f"CPPI configuration invalid with {len(errors)} error(s)", errors=errors
            )
        self._config = config
        self._start_date = start_date or date.today()

    @property
    def config(self) -> CPPIConfig:
        return self._config

    @property
    def start_date(self) -> date:
        return self._start_date

    # =========================================================================
    # Time
    # =========================================================================

    def weeks_since_start(self, on: date) -> int:
        return (on - self._start_date).days // 7

    def invested_to_date(self, on: date) -> float:
        return self._config.initial_capital + self._config.weekly_deposit * self.weeks_since_start(on)

    def is_cadence_week(self, weeks_since_start: int) -> bool:
        """Monthly-cadence sleeves trade only on every fourth week."""
        return weeks_since_start % WEEKS_PER_CADENCE_CYCLE == 0

    # =========================================================================
    # Weights
    # =========================================================================

    def risky_weight(self, total: float, floor: float) -> float:
        if total <= 0:
            return 0.0
        cushion = max(total - floor, 0.0)
        return min(self._config.multiplier * cushion / total, 1.0)

    def compute_target_weights(self, risky_weight: float) -> SleeveWeights:
        split = self._config.risky_split
        risky = min(max(risky_weight, 0.0), 1.0 - split.hedge_fixed)
        debit = risky * split.debit / split.total
        credit = risky * split.credit / split.total
        straddle = risky * split.straddle / split.total
        collar = max(0.0, 1.0 - debit - credit - straddle - split.hedge_fixed)
        return SleeveWeights(
            debit=debit,
            credit=credit,
            straddle=straddle,
            collar=collar,
            hedge=split.hedge_fixed,
        )

    def compute_current_weights(self, equities: SleeveEquities) -> SleeveWeights:
        total = equities.total
        if total <= 0:
            return SleeveWeights()
        return SleeveWeights(**{s.value: equities[s] / total for s in Sleeve})

    def needs_rebalance(
        self,
        target: SleeveWeights,
        current: SleeveWeights,
        weeks_since_start: int,
        last_rebalance_week: int = 0
    ) -> bool:
        if weeks_since_start < last_rebalance_week + self._config.rebalance_every_weeks:
            return False
        return any(
            abs(current[s] - target[s]) > self._config.drift_band_abs for s in Sleeve
        )

    def compute_metrics(
        self,
        equities: SleeveEquities,
        on: date,
        last_rebalance_week: int = 0
    ) -> CPPIMetrics:
        """
        Derive the full policy snapshot for ``equities`` on ``on``.

        Args:
            equities: Current sleeve equities
            on: Observation date
            last_rebalance_week: Week index of the last executed rebalance

        Returns:
            CPPIMetrics, never cached
        """
        weeks = self.weeks_since_start(on)
        invested = self.invested_to_date(on)
        floor = self._config.floor_pct * invested
        total = equities.total
        cushion = max(total - floor, 0.0)
        risky_weight = self.risky_weight(total, floor)

        target = self.compute_target_weights(risky_weight)
        current = self.compute_current_weights(equities)

        return CPPIMetrics(
            invested_to_date=invested,
            floor=floor,
            cushion=cushion,
            risky_weight=risky_weight,
            target_weights=target,
            current_weights=current,
            needs_rebalance=self.needs_rebalance(target, current, weeks, last_rebalance_week),
            weeks_since_start=weeks,
        )

    def mark_rebalanced(self, metrics: CPPIMetrics) -> int:
        """Week index to carry forward as the last executed rebalance."""
        logger.info(f"Rebalance executed in week {metrics.weeks_since_start}")
        return metrics.weeks_since_start

    # =========================================================================
    # Allocation
    # =========================================================================

    def compute_contributions_allocation(
        self,
        target: SleeveWeights,
        equities: SleeveEquities,
        deposit: Optional[float] = None
    ) -> SleeveEquities:
        """
        Allocate a deposit across sleeves without selling anything.

        Each sleeve's shortfall against target x (total + deposit) is funded
        first. If the shortfalls fit, the remainder is split pro-rata by
        target weight; otherwise every shortfall is scaled by
        deposit / total shortfall. The result always sums to the deposit.

        Raises:
            CPPIError: If the deposit is negative
        """
        deposit = self._config.weekly_deposit if deposit is None else deposit
        if deposit < 0:
            raise CPPIError(f"deposit cannot be negative, got {deposit}")

        total_after = equities.total + deposit
        shortfalls = {
            s: max(0.0, target[s] * total_after - equities[s]) for s in Sleeve
        }
        total_shortfall = sum(shortfalls.values())

        if total_shortfall <= deposit:
            allocation = dict(shortfalls)
            remaining = deposit - total_shortfall
            if remaining > 0:
                target_total = target.total
                for s in Sleeve:
                    share = target[s] / target_total if target_total > 0 else 1.0 / len(Sleeve)
                    allocation[s] += remaining * share
        else:
            scale = deposit / total_shortfall
            allocation = {s: shortfalls[s] * scale for s in Sleeve}

        return SleeveEquities(**{s.value: amount for s, amount in allocation.items()})

    def min_ticket(self, sleeve: Sleeve) -> float:
        sleeve = Sleeve(sleeve)
        if sleeve is Sleeve.COLLAR:
            return 0.0
        return getattr(self._config.min_tickets, sleeve.value)

    def compute_risk_budget(
        self,
        sleeve: Sleeve,
        equity: float,
        cadence: Cadence = Cadence.WEEKLY
    ) -> float:
        """Dollar risk a sleeve may deploy this period."""
        sleeve = Sleeve(sleeve)
        base = getattr(self._config.base_risk_pct, sleeve.value)
        scale = 1.0 if sleeve is Sleeve.COLLAR else self._config.risk_scale

        budget = equity * base * scale
        if Cadence(cadence) is Cadence.MONTHLY:
            budget *= MONTHLY_BUDGET_MULTIPLIER
        return max(budget, self.min_ticket(sleeve))

    def __repr__(self) -> str:
        return (
            f"CPPIEngine(floor_pct={self._config.floor_pct}, M={self._config.multiplier}, "
            f"start={self._start_date})"
        )


# =============================================================================
# Functional interface
# =============================================================================

def compute_cppi_metrics(
    equities: SleeveEquities,
    on: date,
    config: Optional[CPPIConfig] = None,
    start_date: Optional[date] = None,
    last_rebalance_week: int = 0
) -> CPPIMetrics:
    return CPPIEngine(config, start_date).compute_metrics(equities, on, last_rebalance_week)


def compute_contributions_allocation(
    target: SleeveWeights,
    equities: SleeveEquities,
    deposit: float,
    config: Optional[CPPIConfig] = None
) -> SleeveEquities:
    return CPPIEngine(config).compute_contributions_allocation(target, equities, deposit)


def compute_risk_budget(
    sleeve: Sleeve,
    equity: float,
    cadence: Cadence = Cadence.WEEKLY,
    config: Optional[CPPIConfig] = None
) -> float:
    return CPPIEngine(config).compute_risk_budget(sleeve, equity, cadence)


__all__ = [
    'CPPIError',
    'CPPIConfigError',
    'RiskySplit',
    'BaseRiskPct',
    'MinTickets',
    'CPPIConfig',
    'cppi_config_errors',
    'CPPIMetrics',
    'CPPIEngine',
    'compute_cppi_metrics',
    'compute_contributions_allocation',
    'compute_risk_budget',
]
