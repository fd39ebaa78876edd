from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import text, bindparam
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncConnection, AsyncEngine, AsyncSession, async_sessionmaker
)

from ...infra.sql import Gated
from ..db import Base, RegistrationRow
from ..records import Registration, STATUS_CREATED, STATUS_ORDER_CREATED
from ._base import RegistrationStore, timestamp_field

_COLUMNS = """
    reference_id, full_name, email, phone, status, order_id, transaction_id,
    failure_reason, created_at, order_created_at, paid_at, failed_at
"""


async def create_schema(conn: AsyncConnection) -> None:
    await conn.run_sync(Base.metadata.create_all)


def _row_to_registration(row: Dict[str, Any]) -> Registration:
    return Registration(
        reference_id=row["reference_id"],
        full_name=row["full_name"],
        email=row["email"],
        phone=row["phone"],
        status=row["status"],
        order_id=row["order_id"],
        transaction_id=row["transaction_id"],
        failure_reason=row["failure_reason"],
        created_at=float(row["created_at"]),
        order_created_at=row["order_created_at"],
        paid_at=row["paid_at"],
        failed_at=row["failed_at"],
    )


class SqlRegistrationStore(RegistrationStore):
    def __init__(
        self, *, engine: AsyncEngine,
        sessions: async_sessionmaker[AsyncSession],
        gated: Gated,
    ) -> None:
        self.engine = engine
        self.sessions = sessions
        self.gated = gated

    async def init_schema(self) -> None:
        async with self.engine.begin() as conn:
            await create_schema(conn)

    async def create(self, reg: Registration) -> None:
        async with self.gated():
            async with self.sessions() as db:
                async with db.begin():
                    db.add(RegistrationRow(**reg.to_dict()))

    async def _fetch_one(
            self, where: str, params: Dict[str, Any]
    ) -> Optional[Registration]:
        async with self.gated():
            async with self.sessions() as db:
                row = (await db.execute(
                    text(f"SELECT {_COLUMNS} FROM registrations WHERE {where}"),
                    params,
                )).mappings().first()
        return _row_to_registration(dict(row)) if row else None

    async def get(self, reference_id: str) -> Optional[Registration]:
        return await self._fetch_one(
            "reference_id = :rid", {"rid": reference_id}
        )

    async def get_by_order_id(self, order_id: str) -> Optional[Registration]:
        return await self._fetch_one("order_id = :oid", {"oid": order_id})

    async def attach_order(
            self, reference_id: str, order_id: str, now: float
    ) -> bool:
        try:
            async with self.gated():
                async with self.sessions() as db:
                    async with db.begin():
                        result = await db.execute(text("""
                          UPDATE registrations
                          SET order_id = :oid, status = :new,
                              order_created_at = :now
                          WHERE reference_id = :rid AND status = :expected
                        """), {
                            "oid": order_id,
                            "new": STATUS_ORDER_CREATED,
                            "now": now,
                            "rid": reference_id,
                            "expected": STATUS_CREATED,
                        })
        except IntegrityError:
            # order_id already owned by another registration
            raise KeyError(f"duplicate order_id {order_id}")
        return result.rowcount == 1

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
        sets = ["status = :new"]
        params: Dict[str, Any] = {
            "new": new_status,
            "rid": reference_id,
            "expected": tuple(expected),
        }
        if transaction_id is not None:
            sets.append("transaction_id = :txn")
            params["txn"] = transaction_id
        if failure_reason is not None:
            sets.append("failure_reason = :reason")
            params["reason"] = failure_reason
        ts_field = timestamp_field(new_status)
        if ts_field:
            sets.append(f"{ts_field} = :now")
            params["now"] = now

        stmt = text(f"""
            UPDATE registrations SET {", ".join(sets)}
            WHERE reference_id = :rid AND status IN :expected
        """).bindparams(bindparam("expected", expanding=True))

        async with self.gated():
            async with self.sessions() as db:
                async with db.begin():
                    result = await db.execute(stmt, params)
        return result.rowcount == 1

    async def list_recent(
            self, limit: int = 200, status: Optional[str] = None
    ) -> Tuple[int, List[Registration]]:
        where = "WHERE status = :status" if status else ""
        params: Dict[str, Any] = {"lim": int(limit)}
        if status:
            params["status"] = status
        async with self.gated():
            async with self.sessions() as db:
                total = (await db.execute(
                    text(f"SELECT COUNT(*) FROM registrations {where}"),
                    params,
                )).scalar_one()
                rows = (await db.execute(text(f"""
                    SELECT {_COLUMNS} FROM registrations {where}
                    ORDER BY created_at DESC
                    LIMIT :lim
                """), params)).mappings().all()
        return int(total), [_row_to_registration(dict(r)) for r in rows]

    async def close(self) -> None:
        await self.engine.dispose()
