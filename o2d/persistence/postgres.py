"""PostgreSQL implementation of the item repository."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from ..contracts import Item, ItemPatch, PatchTarget, StepConfig
from ..errors import PersistenceError
from .repository import ItemRepository


def _load_json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


class PostgresItemRepository(ItemRepository):
    """Persist items and step configuration using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        try:
            conn = await asyncpg.connect(self._dsn)
        except (OSError, asyncpg.PostgresError) as exc:
            raise PersistenceError(f"Could not connect to PostgreSQL: {exc}") from exc
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS o2d_items (
                id INTEGER PRIMARY KEY,
                party_id INTEGER NOT NULL,
                party_name TEXT,
                item TEXT NOT NULL,
                qty DOUBLE PRECISION NOT NULL,
                cancelled BOOLEAN NOT NULL DEFAULT FALSE,
                steps JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS o2d_step_config (
                step INTEGER PRIMARY KEY,
                step_name TEXT NOT NULL,
                doer_name TEXT NOT NULL,
                tat_value DOUBLE PRECISION NOT NULL,
                tat_unit TEXT NOT NULL
            )
            """
        )

    @staticmethod
    def _record_to_item(r: asyncpg.Record) -> Item:
        return Item(
            id=r["id"],
            party_id=r["party_id"],
            party_name=r["party_name"],
            item=r["item"],
            qty=r["qty"],
            cancelled=r["cancelled"],
            steps=_load_json(r["steps"]),
        )

    # ------------------------------------------------------------------
    async def fetch_items(self) -> list[Item]:
        conn = await self._connect()
        try:
            rows = await conn.fetch("SELECT * FROM o2d_items ORDER BY id")
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"Failed to fetch items: {exc}") from exc
        finally:
            await conn.close()
        return [self._record_to_item(r) for r in rows]

    async def fetch_step_config(self) -> list[StepConfig]:
        conn = await self._connect()
        try:
            rows = await conn.fetch("SELECT * FROM o2d_step_config ORDER BY step")
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"Failed to fetch step config: {exc}") from exc
        finally:
            await conn.close()
        return [StepConfig(**dict(r)) for r in rows]

    async def apply_patch(self, target: PatchTarget, patch: ItemPatch) -> list[Item]:
        conn = await self._connect()
        try:
            async with conn.transaction():
                if target.kind == "item":
                    rows = await conn.fetch(
                        "SELECT * FROM o2d_items WHERE id = $1 FOR UPDATE", target.id
                    )
                else:
                    rows = await conn.fetch(
                        "SELECT * FROM o2d_items WHERE party_id = $1 AND NOT cancelled ORDER BY id FOR UPDATE",
                        target.id,
                    )
                if not rows:
                    raise PersistenceError(f"No items found for {target}", target=target)
                updated = [self._record_to_item(r).apply_patch(patch) for r in rows]
                await conn.executemany(
                    "UPDATE o2d_items SET cancelled = $1, steps = $2 WHERE id = $3",
                    [
                        (
                            item.cancelled,
                            json.dumps([s.model_dump(mode="json") for s in item.steps]),
                            item.id,
                        )
                        for item in updated
                    ],
                )
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"Failed to apply patch to {target}: {exc}", target=target) from exc
        finally:
            await conn.close()
        return updated

    async def create_item(self, item: Item) -> Item:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO o2d_items (id, party_id, party_name, item, qty, cancelled, steps) VALUES ($1, $2, $3, $4, $5, $6, $7)",
                item.id,
                item.party_id,
                item.party_name,
                item.item,
                item.qty,
                item.cancelled,
                json.dumps([s.model_dump(mode="json") for s in item.steps]),
            )
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"Failed to create item {item.id}: {exc}") from exc
        finally:
            await conn.close()
        return item

    async def save_step_config(self, configs: list[StepConfig]) -> None:
        conn = await self._connect()
        try:
            async with conn.transaction():
                await conn.execute("DELETE FROM o2d_step_config")
                await conn.executemany(
                    "INSERT INTO o2d_step_config (step, step_name, doer_name, tat_value, tat_unit) VALUES ($1, $2, $3, $4, $5)",
                    [
                        (c.step, c.step_name, c.doer_name, c.tat_value, c.tat_unit)
                        for c in configs
                    ],
                )
        except asyncpg.PostgresError as exc:
            raise PersistenceError(f"Failed to save step config: {exc}") from exc
        finally:
            await conn.close()
