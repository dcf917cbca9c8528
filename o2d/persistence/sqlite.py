"""SQLite implementation of the item repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from pathlib import Path
from typing import Any

from ..contracts import Item, ItemPatch, PatchTarget, StepConfig, StepRecord
from ..errors import PersistenceError
from .repository import ItemRepository


def _dump_steps(steps: list[StepRecord]) -> str:
    return json.dumps([step.model_dump(mode="json") for step in steps])


class SQLiteItemRepository(ItemRepository):
    """Persist items and step configuration using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY,
                party_id INTEGER NOT NULL,
                party_name TEXT,
                item TEXT NOT NULL,
                qty REAL NOT NULL,
                cancelled INTEGER NOT NULL DEFAULT 0,
                steps TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS step_config (
                step INTEGER PRIMARY KEY,
                step_name TEXT NOT NULL,
                doer_name TEXT NOT NULL,
                tat_value REAL NOT NULL,
                tat_unit TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> Item:
        return Item(
            id=row["id"],
            party_id=row["party_id"],
            party_name=row["party_name"],
            item=row["item"],
            qty=row["qty"],
            cancelled=bool(row["cancelled"]),
            steps=json.loads(row["steps"]),
        )

    def _apply_patch_sync(self, target: PatchTarget, patch: ItemPatch) -> list[Item]:
        if target.kind == "item":
            rows = self._fetchall("SELECT * FROM items WHERE id = ?", target.id)
        else:
            rows = self._fetchall(
                "SELECT * FROM items WHERE party_id = ? AND cancelled = 0 ORDER BY id",
                target.id,
            )
        if not rows:
            raise PersistenceError(f"No items found for {target}", target=target)

        updated = [self._row_to_item(row).apply_patch(patch) for row in rows]
        with self._conn:
            self._conn.executemany(
                "UPDATE items SET cancelled = ?, steps = ? WHERE id = ?",
                [(int(item.cancelled), _dump_steps(item.steps), item.id) for item in updated],
            )
        return updated

    def _replace_config_sync(self, configs: list[StepConfig]) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM step_config")
            self._conn.executemany(
                "INSERT INTO step_config (step, step_name, doer_name, tat_value, tat_unit) VALUES (?, ?, ?, ?, ?)",
                [
                    (c.step, c.step_name, c.doer_name, c.tat_value, c.tat_unit)
                    for c in configs
                ],
            )

    async def _run(self, func: Any, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise PersistenceError(f"SQLite error: {exc}") from exc

    # ------------------------------------------------------------------
    # Repository API
    async def fetch_items(self) -> list[Item]:
        rows = await self._run(self._fetchall, "SELECT * FROM items ORDER BY id")
        return [self._row_to_item(row) for row in rows]

    async def fetch_step_config(self) -> list[StepConfig]:
        rows = await self._run(self._fetchall, "SELECT * FROM step_config ORDER BY step")
        return [
            StepConfig(
                step=r["step"],
                step_name=r["step_name"],
                doer_name=r["doer_name"],
                tat_value=r["tat_value"],
                tat_unit=r["tat_unit"],
            )
            for r in rows
        ]

    async def apply_patch(self, target: PatchTarget, patch: ItemPatch) -> list[Item]:
        return await self._run(self._apply_patch_sync, target, patch)

    async def create_item(self, item: Item) -> Item:
        await self._run(
            self._execute,
            "INSERT INTO items (id, party_id, party_name, item, qty, cancelled, steps) VALUES (?, ?, ?, ?, ?, ?, ?)",
            item.id,
            item.party_id,
            item.party_name,
            item.item,
            item.qty,
            int(item.cancelled),
            _dump_steps(item.steps),
        )
        return item

    async def save_step_config(self, configs: list[StepConfig]) -> None:
        await self._run(self._replace_config_sync, configs)
