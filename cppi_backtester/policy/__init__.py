"""
CPPI Policy Module

Constant-proportion portfolio insurance over five option sleeves.

Components:
    - sleeves: Sleeve enum, weights and equities value types
    - cppi: CPPIConfig and the stateless CPPIEngine
    - simulation: Multi-week policy walk on stylized returns
    - sleeve_runner: Live cycle against a broker gateway (import directly)

Usage:
    from cppi_backtester.policy import CPPIEngine, SleeveEquities

    engine = CPPIEngine(start_date=date(2024, 1, 1))
    metrics = engine.compute_metrics(SleeveEquities(2000, 1500, 1000, 4000, 500),
                                     date(2024, 1, 1))
"""

from cppi_backtester.policy.sleeves import (
    SUM_TOLERANCE,
    SleeveError,
    Sleeve,
    Cadence,
    RISKY_SLEEVES,
    STRATEGY_ID_SLEEVES,
    ARCHETYPE_SLEEVES,
    DEFAULT_CADENCES,
    sleeve_for_strategy,
    SleeveWeights,
    SleeveEquities,
)

from cppi_backtester.policy.cppi import (
    CPPIError,
    CPPIConfigError,
    RiskySplit,
    BaseRiskPct,
    MinTickets,
    CPPIConfig,
    cppi_config_errors,
    CPPIMetrics,
    CPPIEngine,
    compute_cppi_metrics,
    compute_contributions_allocation,
    compute_risk_budget,
)

from cppi_backtester.policy.simulation import (
    SLEEVE_SHOCKS,
    simulate_policy,
)

__all__ = [
    # Sleeves
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

    # Policy
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

    # Simulation
    'SLEEVE_SHOCKS',
    'simulate_policy',
]
