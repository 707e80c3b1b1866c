"""
Sleeve Value Types

The portfolio is split into five sleeves, each funding one family of option
strategies:

    debit     Defined-risk debit verticals (risky)
    credit    Credit put spreads and cash-secured puts (risky)
    straddle  Event straddles on a monthly cadence (risky)
    collar    Collared equity; the ballast sleeve absorbing residual weight
    hedge     Far out-of-the-money crash protection at a fixed weight

This module holds the immutable value types the CPPI policy engine reads and
returns, plus the fixed mappings from strategy identifiers and archetypes to
sleeves.
"""

import logging
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from cppi_backtester.structures.legs import StrategyArchetype

# Configure module logger
logger = logging.getLogger(__name__)

# Tolerance for sum invariants on weights and equities
SUM_TOLERANCE = 1e-6


class SleeveError(ValueError):
    """Exception raised when sleeve values violate their invariants."""
    pass


class Sleeve(str, Enum):
    """The five portfolio sleeves."""

    DEBIT = "debit"
    CREDIT = "credit"
    STRADDLE = "straddle"
    COLLAR = "collar"
    HEDGE = "hedge"


class Cadence(str, Enum):
    """How often a sleeve places new trades."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"


RISKY_SLEEVES = (Sleeve.DEBIT, Sleeve.CREDIT, Sleeve.STRADDLE)

# Live strategy identifiers -> sleeve
STRATEGY_ID_SLEEVES: Dict[str, Sleeve] = {
    'debit_spreads': Sleeve.DEBIT,
    'credit_spreads': Sleeve.CREDIT,
    'event_straddles': Sleeve.STRADDLE,
    'collar_equity': Sleeve.COLLAR,
    'crash_hedge': Sleeve.HEDGE,
}

# Archetype -> sleeve, used when a backtest sizes trades through the policy
ARCHETYPE_SLEEVES: Dict[StrategyArchetype, Sleeve] = {
    StrategyArchetype.DEBIT_CALL_VERTICAL: Sleeve.DEBIT,
    StrategyArchetype.CREDIT_PUT_SPREAD: Sleeve.CREDIT,
    StrategyArchetype.CASH_SECURED_PUT: Sleeve.CREDIT,
    StrategyArchetype.ATM_STRADDLE: Sleeve.STRADDLE,
    StrategyArchetype.COLLAR_POSITION: Sleeve.COLLAR,
    StrategyArchetype.CRASH_HEDGE_PUT: Sleeve.HEDGE,
}

DEFAULT_CADENCES: Dict[Sleeve, Cadence] = {
    Sleeve.DEBIT: Cadence.WEEKLY,
    Sleeve.CREDIT: Cadence.WEEKLY,
    Sleeve.STRADDLE: Cadence.MONTHLY,
    Sleeve.COLLAR: Cadence.WEEKLY,
    Sleeve.HEDGE: Cadence.WEEKLY,
}


def sleeve_for_strategy(strategy_id: str) -> Optional[Sleeve]:
    """Sleeve of a live strategy id, or None if the id is unknown."""
    return STRATEGY_ID_SLEEVES.get(strategy_id)


# =============================================================================
# Weights
# =============================================================================

@dataclass(frozen=True)
class SleeveWeights:
    """Fractions of total equity per sleeve (target or current)."""

    debit: float = 0.0
    credit: float = 0.0
    straddle: float = 0.0
    collar: float = 0.0
    hedge: float = 0.0

    @property
    def total(self) -> float:
        return self.debit + self.credit + self.straddle + self.collar + self.hedge

    def __getitem__(self, sleeve: Sleeve) -> float:
        return getattr(self, Sleeve(sleeve).value)

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SleeveWeights":
        return cls(**{s.value: float(data.get(s.value, 0.0)) for s in Sleeve})

    def is_normalized(self, tolerance: float = SUM_TOLERANCE) -> bool:
        return abs(self.total - 1.0) <= tolerance


# =============================================================================
# Equities
# =============================================================================

@dataclass(frozen=True)
class SleeveEquities:
    """
    Dollar equity per sleeve.

    ``total`` is derived from the five sleeves, so the sum invariant holds by
    construction. Instances are immutable; mutations return new values.
    """

    debit: float = 0.0
    credit: float = 0.0
    straddle: float = 0.0
    collar: float = 0.0
    hedge: float = 0.0

    @property
    def total(self) -> float:
        return self.debit + self.credit + self.straddle + self.collar + self.hedge

    def __getitem__(self, sleeve: Sleeve) -> float:
        return getattr(self, Sleeve(sleeve).value)

    def add(self, amounts: "SleeveEquities") -> "SleeveEquities":
        """New equities with per-sleeve dollar ``amounts`` added."""
        return SleeveEquities(**{
            s.value: self[s] + amounts[s] for s in Sleeve
        })

    def with_sleeve(self, sleeve: Sleeve, value: float) -> "SleeveEquities":
        return replace(self, **{Sleeve(sleeve).value: value})

    def to_dict(self) -> Dict[str, float]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['total'] = self.total
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SleeveEquities":
        """
        Build equities from a mapping; a supplied ``total`` must match the
        sleeve sum.

        Raises:
            SleeveError: If ``total`` disagrees with the sum of the sleeves
        """
        equities = cls(**{s.value: float(data.get(s.value, 0.0)) for s in Sleeve})
        if 'total' in data and data['total'] is not None:
            stated = float(data['total'])
            if abs(stated - equities.total) > SUM_TOLERANCE:
                raise SleeveError(
                    f"Sleeve equities total {stated} does not match sum of sleeves "
                    f"{equities.total}"
                )
        return equities

    @classmethod
    def from_total(cls, total: float, weights: SleeveWeights) -> "SleeveEquities":
        """Split ``total`` by ``weights``."""
        return cls(**{s.value: total * weights[s] for s in Sleeve})


__all__ = [
    'SUM_TOLERANCE',
    'SleeveError',
    'Sleeve',
    'Cadence',
    'RISKY_SLEEVES',
    'STRATEGY_ID_SLEEVES',
    'ARCHETYPE_SLEEVES',
    'DEFAULT_CADENCES',
    'sleeve_for_strategy',
    'SleeveWeights',
    'SleeveEquities',
]
