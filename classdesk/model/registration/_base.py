from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from ..records import Registration


class RegistrationStore(ABC):
    """Registrations keyed by reference id, with a secondary order-id index.

    Every status change goes through a compare-and-set so that concurrent
    confirmations of the same registration produce exactly one winner.
    """

    @abstractmethod
    async def create(self, reg: Registration) -> None: ...

    @abstractmethod
    async def get(self, reference_id: str) -> Optional[Registration]: ...

    @abstractmethod
    async def get_by_order_id(
            self, order_id: str) -> Optional[Registration]: ...

    # CREATED -> ORDER_CREATED; False if the status was not CREATED
    @abstractmethod
    async def attach_order(
            self, reference_id: str, order_id: str, now: float
    ) -> bool: ...

    @abstractmethod
    async def compare_and_set_status(
        self,
        reference_id: str,
        expected: Iterable[str],
        new_status: str,
        *,
        now: float,
        transaction_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> bool: ...

    # (total, newest first)
    @abstractmethod
    async def list_recent(
            self, limit: int = 200, status: Optional[str] = None
    ) -> Tuple[int, List[Registration]]: ...

    async def close(self) -> None:
        return None


def timestamp_field(new_status: str) -> Optional[str]:
    return {
        "ORDER_CREATED": "order_created_at",
        "PAID": "paid_at",
        "FAILED": "failed_at",
    }.get(new_status)
