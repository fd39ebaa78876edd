from __future__ import annotations
import asyncio
import dataclasses
from typing import Dict, Iterable, List, Optional, Tuple

from ..records import Registration, STATUS_CREATED, STATUS_ORDER_CREATED
from ._base import RegistrationStore, timestamp_field


class MemoryRegistrationStore(RegistrationStore):
    """Process-local store; one lock serializes every mutation."""

    def __init__(self) -> None:
        self._by_ref: Dict[str, Registration] = {}
        self._by_order: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def create(self, reg: Registration) -> None:
        async with self._lock:
            if reg.reference_id in self._by_ref:
                raise KeyError(f"duplicate reference_id {reg.reference_id}")
            self._by_ref[reg.reference_id] = dataclasses.replace(reg)

    async def get(self, reference_id: str) -> Optional[Registration]:
        reg = self._by_ref.get(reference_id)
        # hand out copies so callers can't mutate stored state
        return dataclasses.replace(reg) if reg else None

    async def get_by_order_id(self, order_id: str) -> Optional[Registration]:
        rid = self._by_order.get(order_id)
        return await self.get(rid) if rid else None

    async def attach_order(
            self, reference_id: str, order_id: str, now: float
    ) -> bool:
        async with self._lock:
            reg = self._by_ref.get(reference_id)
            if reg is None or reg.status != STATUS_CREATED:
                return False
            if order_id in self._by_order:
                raise KeyError(f"duplicate order_id {order_id}")
            reg.order_id = order_id
            reg.status = STATUS_ORDER_CREATED
            reg.order_created_at = now
            self._by_order[order_id] = reference_id
            return True

    async def compare_and_set_status(
        self,
        reference_id: str,
        expected: Iterable[str],
        new_status: str,
        *,
        now: float,
        transaction_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
    ) -> bool:
        async with self._lock:
            reg = self._by_ref.get(reference_id)
            if reg is None or reg.status not in tuple(expected):
                return False
            reg.status = new_status
            if transaction_id is not None:
                reg.transaction_id = transaction_id
            if failure_reason is not None:
                reg.failure_reason = failure_reason
            ts_field = timestamp_field(new_status)
            if ts_field:
                setattr(reg, ts_field, now)
            return True

    async def list_recent(
            self, limit: int = 200, status: Optional[str] = None
    ) -> Tuple[int, List[Registration]]:
        regs = [
            r for r in self._by_ref.values()
            if status is None or r.status == status
        ]
        regs.sort(key=lambda r: r.created_at, reverse=True)
        return len(regs), [dataclasses.replace(r) for r in regs[:limit]]
