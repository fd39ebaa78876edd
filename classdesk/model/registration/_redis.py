from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Tuple
import redis.asyncio as redis
from redis.exceptions import WatchError

from ..records import Registration, STATUS_CREATED, STATUS_ORDER_CREATED
from ._base import RegistrationStore, timestamp_field


# ---- keys
def k_reg(rid: str) -> str: return f"reg:{rid}"
def k_order(oid: str) -> str: return f"regorder:{oid}"


CREATED_INDEX = "idx:registrations:created"

_FLOATS = ("created_at", "order_created_at", "paid_at", "failed_at")


def _encode(reg: Registration) -> Dict[str, str]:
    # hashes can't hold None; "" round-trips to None
    return {
        k: ("" if v is None else str(v)) for k, v in reg.to_dict().items()
    }


def _decode(h: Dict[str, str]) -> Registration:
    vals = {k: (v if v != "" else None) for k, v in h.items()}
    for f in _FLOATS:
        if vals.get(f) is not None:
            vals[f] = float(vals[f])
    return Registration(**vals)


class RedisRegistrationStore(RegistrationStore):
    def __init__(self, r: redis.Redis) -> None:
        self.r = r

    async def create(self, reg: Registration) -> None:
        pipe = self.r.pipeline(transaction=True)
        pipe.hset(k_reg(reg.reference_id), mapping=_encode(reg))
        pipe.zadd(CREATED_INDEX, {reg.reference_id: reg.created_at})
        await pipe.execute()

    async def get(self, reference_id: str) -> Optional[Registration]:
        h = await self.r.hgetall(k_reg(reference_id))
        return _decode(h) if h else None

    async def get_by_order_id(self, order_id: str) -> Optional[Registration]:
        rid = await self.r.get(k_order(order_id))
        return await self.get(rid) if rid else None

    async def attach_order(
            self, reference_id: str, order_id: str, now: float
    ) -> bool:
        # NX claim on the order id keeps the secondary index unique
        claimed = await self.r.set(k_order(order_id), reference_id, nx=True)
        if not claimed:
            raise KeyError(f"duplicate order_id {order_id}")
        try:
            ok = await self.compare_and_set_status(
                reference_id, (STATUS_CREATED,), STATUS_ORDER_CREATED,
                now=now, order_id=order_id,
            )
        except Exception:
            await self.r.delete(k_order(order_id))
            raise
        if not ok:
            await self.r.delete(k_order(order_id))
        return ok

    async def compare_and_set_status(
        self,
        reference_id: str,
        expected: Iterable[str],
        new_status: str,
        *,
        now: float,
        transaction_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> bool:
        expected = tuple(expected)
        mapping = {"status": new_status}
        if transaction_id is not None:
            mapping["transaction_id"] = transaction_id
        if failure_reason is not None:
            mapping["failure_reason"] = failure_reason
        if order_id is not None:
            mapping["order_id"] = order_id
        ts_field = timestamp_field(new_status)
        if ts_field:
            mapping[ts_field] = str(now)

        key = k_reg(reference_id)
        async with self.r.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    current = await pipe.hget(key, "status")
                    if current is None or current not in expected:
                        await pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.hset(key, mapping=mapping)
                    await pipe.execute()
                    return True
                except WatchError:
                    # someone else touched the record; re-read and retry
                    continue

    async def list_recent(
            self, limit: int = 200, status: Optional[str] = None
    ) -> Tuple[int, List[Registration]]:
        rids = await self.r.zrevrange(CREATED_INDEX, 0, -1)
        pipe = self.r.pipeline()
        for rid in rids:
            pipe.hgetall(k_reg(rid))
        rows = await pipe.execute()

        regs = [_decode(h) for h in rows if h]
        if status:
            regs = [r for r in regs if r.status == status]
        return len(regs), regs[:limit]

    async def close(self) -> None:
        await self.r.aclose()
