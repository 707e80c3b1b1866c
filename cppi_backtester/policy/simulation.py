"""
Weekly CPPI policy simulation.

Steps the policy engine through a number of weeks on stylized sleeve returns
so its behaviour (floor, cushion, target drift, deposit routing, risk
budgets, cadence gate) can be inspected without market data. Each week:

    1. compute metrics for the current equities
    2. allocate the weekly deposit with the no-sell rule
    3. compute each sleeve's risk budget at its cadence
    4. record the cadence gate and rebalance flag (marking executed rebalances)
    5. add the allocation plus a seeded return shock per sleeve, clamped at zero
"""

import logging
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from cppi_backtester.policy.cppi import CPPIEngine
from cppi_backtester.policy.sleeves import DEFAULT_CADENCES, Sleeve, SleeveEquities

logger = logging.getLogger(__name__)

# (center, dollar scale) of the uniform weekly shock per sleeve
SLEEVE_SHOCKS: Dict[Sleeve, Tuple[float, float]] = {
    Sleeve.DEBIT: (0.40, 50.0),
    Sleeve.CREDIT: (0.30, 20.0),
    Sleeve.STRADDLE: (0.45, 80.0),
    Sleeve.COLLAR: (0.45, 30.0),
    Sleeve.HEDGE: (0.80, 30.0),
}


def simulate_policy(
    engine: CPPIEngine,
    initial_equities: SleeveEquities,
    weeks: int,
    seed: int = 42,
    start_date: Optional[date] = None
) -> pd.DataFrame:
    """
    Run the weekly policy loop.

    Args:
        engine: Configured policy engine; weeks are counted from its start date
        initial_equities: Sleeve equities at week zero
        weeks: Number of weeks to simulate
        seed: Seed of the return-shock stream
        start_date: First observation date (engine start date when None)

    Returns:
        DataFrame indexed by week with metrics, allocations and budgets
    """
    if weeks < 0:
        raise ValueError(f"weeks cannot be negative, got {weeks}")

    rng = np.random.default_rng(seed)
    first = start_date or engine.start_date
    equities = initial_equities
    last_rebalance_week = 0
    rows: List[Dict] = []

    for week in range(weeks):
        on = first + timedelta(days=7 * week)
        metrics = engine.compute_metrics(equities, on, last_rebalance_week)
        allocation = engine.compute_contributions_allocation(
            metrics.target_weights, equities, engine.config.weekly_deposit
        )

        row = {
            'week': week,
            'date': on,
            'total': equities.total,
            'invested_to_date': metrics.invested_to_date,
            'floor': metrics.floor,
            'cushion': metrics.cushion,
            'risky_weight': metrics.risky_weight,
            'straddle_gate': engine.is_cadence_week(metrics.weeks_since_start),
            'needs_rebalance': metrics.needs_rebalance,
        }
        for sleeve in Sleeve:
            row[f'target_{sleeve.value}'] = metrics.target_weights[sleeve]
            row[f'current_{sleeve.value}'] = metrics.current_weights[sleeve]
            row[f'alloc_{sleeve.value}'] = allocation[sleeve]
            row[f'budget_{sleeve.value}'] = engine.compute_risk_budget(
                sleeve, equities[sleeve], DEFAULT_CADENCES[sleeve]
            )
        rows.append(row)

        if metrics.needs_rebalance:
            last_rebalance_week = engine.mark_rebalanced(metrics)

        draws = rng.random(len(Sleeve))
        equities = SleeveEquities(**{
            sleeve.value: max(
                0.0,
                equities[sleeve] + allocation[sleeve]
                + (u - SLEEVE_SHOCKS[sleeve][0]) * SLEEVE_SHOCKS[sleeve][1],
            )
            for sleeve, u in zip(Sleeve, draws)
        })

    logger.debug(f"Simulated {weeks} policy weeks; final total ${equities.total:,.2f}")
    frame = pd.DataFrame(rows)
    if not frame.empty:
        frame = frame.set_index('week')
    return frame


__all__ = ['SLEEVE_SHOCKS', 'simulate_policy']
