"""Wallet Repository Interface"""

from abc import ABC, abstractmethod
from datetime import datetime

from ..entities import WalletBalance, WalletEvent


class IWalletRepository(ABC):
    """
    Abstract interface for wallet balances and the wallet event log

    Only the ledger service writes through this interface.
    """

    @abstractmethod
    async def get(self, user_id: str) -> WalletBalance | None:
        """Read a balance without locking"""
        pass

    @abstractmethod
    async def get_or_create_for_update(self, user_id: str, now: datetime) -> WalletBalance:
        """
        Lock the balance row until the transaction ends

        A missing row is inserted with zero balance first. Concurrent
        callers for the same new user both end up holding the one row.
        """
        pass

    @abstractmethod
    async def update(self, balance: WalletBalance) -> None:
        """Overwrite balance and counters"""
        pass

    @abstractmethod
    async def append_event(self, event: WalletEvent) -> WalletEvent:
        """Append an event; the returned copy carries its sequence number"""
        pass

    @abstractmethod
    async def list_events(
        self,
        user_id: str,
        limit: int | None = None,
        offset: int = 0,
        newest_first: bool = False,
    ) -> list[WalletEvent]:
        """Events for a user in sequence order"""
        pass
