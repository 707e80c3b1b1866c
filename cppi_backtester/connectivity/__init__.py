"""
Connectivity Package

Broker boundary used by the live sleeve cycle.
"""

from cppi_backtester.connectivity.broker import (
    AccountInfo,
    BrokerError,
    BrokerGateway,
    DatasetBroker,
    DryRunBroker,
    SubmittedOrder,
    select_account,
)

__all__ = [
    'AccountInfo',
    'BrokerError',
    'BrokerGateway',
    'DatasetBroker',
    'DryRunBroker',
    'SubmittedOrder',
    'select_account',
]
