"""SQLite-backed log of shipment updates forwarded to Cafe24."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from shipbridge.schemas.shipment import ShipmentLog


def _default_json_serializer(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Type {type(value)!r} not serializable")


def _utc_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class ShipmentLogStore:
    """One row per (mall_id, order_id, tracking_no); later updates overwrite."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS shipment_logs (
                    mall_id TEXT NOT NULL,
                    order_id TEXT NOT NULL,
                    tracking_no TEXT NOT NULL,
                    shipping_company_code TEXT NOT NULL,
                    status TEXT NOT NULL,
                    payload TEXT,
                    cafe24_response TEXT,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (mall_id, order_id, tracking_no)
                )
                """
            )

    def _insert(self, log: ShipmentLog) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO shipment_logs (
                    mall_id, order_id, tracking_no, shipping_company_code,
                    status, payload, cafe24_response, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(mall_id, order_id, tracking_no) DO UPDATE SET
                    shipping_company_code = excluded.shipping_company_code,
                    status = excluded.status,
                    payload = excluded.payload,
                    cafe24_response = excluded.cafe24_response,
                    created_at = excluded.created_at
                """,
                (
                    log.mall_id,
                    log.order_id,
                    log.tracking_no,
                    log.shipping_company_code,
                    log.status,
                    json.dumps(log.payload, default=_default_json_serializer),
                    json.dumps(log.cafe24_response, default=_default_json_serializer),
                    _utc_iso(log.created_at),
                ),
            )

    def _select(
        self,
        mall_id: Optional[str],
        order_id: Optional[str],
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        limit: Optional[int],
        offset: Optional[int],
    ) -> List[ShipmentLog]:
        clauses: list[str] = []
        values: list[Any] = []
        if mall_id:
            clauses.append("mall_id = ?")
            values.append(mall_id)
        if order_id:
            clauses.append("order_id = ?")
            values.append(order_id)
        if start_date:
            clauses.append("created_at >= ?")
            values.append(_utc_iso(start_date))
        if end_date:
            clauses.append("created_at <= ?")
            values.append(_utc_iso(end_date))

        query = "SELECT * FROM shipment_logs"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at DESC"
        if limit:
            query += " LIMIT ?"
            values.append(limit)
            if offset:
                query += " OFFSET ?"
                values.append(offset)

        with self._connect() as conn:
            rows = conn.execute(query, values).fetchall()

        return [
            ShipmentLog(
                mall_id=row["mall_id"],
                order_id=row["order_id"],
                tracking_no=row["tracking_no"],
                shipping_company_code=row["shipping_company_code"],
                status=row["status"],
                payload=json.loads(row["payload"]) if row["payload"] else None,
                cafe24_response=(
                    json.loads(row["cafe24_response"]) if row["cafe24_response"] else None
                ),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    async def save_log(self, log: ShipmentLog) -> None:
        await asyncio.to_thread(self._insert, log)

    async def list_logs(
        self,
        *,
        mall_id: Optional[str] = None,
        order_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[ShipmentLog]:
        """Return logs newest first, optionally filtered."""
        return await asyncio.to_thread(
            self._select, mall_id, order_id, start_date, end_date, limit, offset
        )


__all__ = ["ShipmentLogStore"]
