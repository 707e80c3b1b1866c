"""
Test Suite for the CPPI Options Backtester

Test modules:
    - test_pricing: Black-Scholes pricing and Greeks validation
    - test_option / test_market_data / test_synthetic: contracts and market data
    - test_legs: strategy leg builders and expiry selection
    - test_execution / test_ledger / test_backtest_engine: the backtester
    - test_metrics / test_report: performance metrics and result files
    - test_sleeves / test_cppi / test_simulation: the CPPI policy
    - test_broker / test_sleeve_runner: the live sleeve cycle
    - test_config / test_cli: configuration and the cppi-bot command line

Run all tests:
    pytest tests/ -v

Run with coverage:
    pytest tests/ --cov=cppi_backtester --cov-report=term-missing
"""
