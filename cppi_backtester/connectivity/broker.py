"""
Broker Boundary

The live sleeve cycle talks to a brokerage only through the ``BrokerGateway``
protocol defined here. Concrete network clients live outside this package;
two in-process gateways are provided:

    DryRunBroker        Wraps any gateway. Quotes, spot and account lookups
                        pass through; orders are logged and answered with
                        DRY-<n> identifiers instead of being sent.
    DatasetBroker       Answers quotes and spot from a MarketDataset as of a
                        fixed date. Read-only: submitting raises BrokerError.

Broker failures surface as ``BrokerError``; nothing here retries.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Protocol, Sequence, Tuple

from cppi_backtester.cli.config_schema import AccountConfig, TradingEnvironment
from cppi_backtester.core.option import OptionQuote, OrderSide
from cppi_backtester.data.market_data import MarketDataset

# Configure module logger
logger = logging.getLogger(__name__)


class BrokerError(Exception):
    """Raised when the broker cannot answer or accept a request."""
    pass


@dataclass(frozen=True)
class AccountInfo:
    """A resolved trading account."""

    acc_id: int
    environment: TradingEnvironment = TradingEnvironment.SIMULATE
    market: str = "US"


@dataclass(frozen=True)
class SubmittedOrder:
    """One leg handed to the broker."""

    order_id: str
    symbol: str
    side: OrderSide
    quantity: int
    price: Optional[float]
    acc_id: int


class BrokerGateway(Protocol):
    """What the sleeve cycle needs from a brokerage."""

    def get_option_quotes(self, underlying: str, dte_min: int, dte_max: int) -> List[OptionQuote]:
        ...

    def get_spot(self, underlying: str) -> float:
        ...

    def submit_leg(
        self,
        symbol: str,
        side: OrderSide,
        quantity: int,
        price: Optional[float],
        account: AccountInfo
    ) -> str:
        ...

    def resolve_account(self, account_config: AccountConfig) -> AccountInfo:
        ...


def select_account(
    accounts: Sequence[AccountInfo],
    account_config: AccountConfig
) -> AccountInfo:
    """
    Pick an account from the broker's list.

    An explicit id wins when it is listed; otherwise the index is used when
    in range; otherwise the first account.

    Raises:
        BrokerError: If the list is empty
    """
    if not accounts:
        raise BrokerError("No account available")
    if account_config.id:
        for account in accounts:
            if account.acc_id == account_config.id:
                return account
        return accounts[0]
    if 0 <= account_config.index < len(accounts):
        return accounts[account_config.index]
    return accounts[0]


class DryRunBroker:
    """
    Gateway decorator that never places orders.

    Example:
        >>> broker = DryRunBroker(DatasetBroker(dataset, date(2023, 3, 1)))
        >>> broker.submit_leg('US.SPY_2023-03-31_400_CALL', OrderSide.BUY, 1, 2.5,
        ...                   AccountInfo(1))
        'DRY-1'
    """

    def __init__(self, gateway: BrokerGateway) -> None:
        self._gateway = gateway
        self._counter = 0
        self.submitted: List[SubmittedOrder] = []

    def get_option_quotes(self, underlying: str, dte_min: int, dte_max: int) -> List[OptionQuote]:
        return self._gateway.get_option_quotes(underlying, dte_min, dte_max)

    def get_spot(self, underlying: str) -> float:
        return self._gateway.get_spot(underlying)

    def resolve_account(self, account_config: AccountConfig) -> AccountInfo:
        return self._gateway.resolve_account(account_config)

    def submit_leg(
        self,
        symbol: str,
        side: OrderSide,
        quantity: int,
        price: Optional[float],
        account: AccountInfo
    ) -> str:
        self._counter += 1
        order_id = f"DRY-{self._counter}"
        order = SubmittedOrder(order_id, symbol, OrderSide(side), quantity, price, account.acc_id)
        self.submitted.append(order)
        logger.info(f"[DRY] place_order {side} {quantity}x {symbol} @ {price} acc={account.acc_id}")
        return order_id


class DatasetBroker:
    """
    Read-only gateway over a MarketDataset as of one date.

    Attributes:
        dataset: Market history answering quote and spot requests
        as_of: Valuation date
        accounts: Accounts reported by ``resolve_account``
    """

    def __init__(
        self,
        dataset: MarketDataset,
        as_of: date,
        accounts: Sequence[AccountInfo] = (AccountInfo(1),)
    ) -> None:
        self.dataset = dataset
        self.as_of = as_of
        self.accounts: Tuple[AccountInfo, ...] = tuple(accounts)

    def get_option_quotes(self, underlying: str, dte_min: int, dte_max: int) -> List[OptionQuote]:
        surface = self.dataset.surface(underlying, self.as_of).within_dte(dte_min, dte_max)
        return list(surface.quotes)

    def get_spot(self, underlying: str) -> float:
        point = self.dataset.price(underlying, self.as_of)
        if point is None:
            raise BrokerError(f"No price for {underlying} on {self.as_of}")
        return point.price

    def resolve_account(self, account_config: AccountConfig) -> AccountInfo:
        return select_account(self.accounts, account_config)

    def submit_leg(
        self,
        symbol: str,
        side: OrderSide,
        quantity: int,
        price: Optional[float],
        account: AccountInfo
    ) -> str:
        raise BrokerError("DatasetBroker is read-only; wrap it in DryRunBroker to submit")


__all__ = [
    'BrokerError',
    'AccountInfo',
    'SubmittedOrder',
    'BrokerGateway',
    'select_account',
    'DryRunBroker',
    'DatasetBroker',
]
