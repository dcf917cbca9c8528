"""HTTP implementation of the item repository.

Speaks the order-tracking REST API, where each item is a flat record with
``Planned_<n>``/``Actual_<n>`` columns and one column per response field.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..catalog import CATALOG, StepCatalog
from ..contracts import Item, ItemPatch, PatchTarget, StepConfig, StepRecord
from ..errors import PersistenceError
from .repository import ItemRepository

logger = logging.getLogger(__name__)

CANCELLED_MARKER = "Cancelled"


def _blank_to_none(value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return value


def item_from_flat(raw: Dict[str, Any], party: Dict[str, Any], catalog: StepCatalog = CATALOG) -> Item:
    """Build an :class:`Item` from a flat API record."""
    steps: List[StepRecord] = []
    for definition in catalog:
        n = definition.number
        responses = {
            name: str(raw[name])
            for name in definition.fields
            if _blank_to_none(raw.get(name)) is not None
        }
        steps.append(
            StepRecord(
                planned=_blank_to_none(raw.get(f"Planned_{n}")),
                actual=_blank_to_none(raw.get(f"Actual_{n}")),
                responses=responses,
            )
        )
    return Item(
        id=int(raw["id"]),
        party_id=int(raw.get("party_id") or party.get("party_id")),
        party_name=raw.get("party_name") or party.get("party_name"),
        item=raw.get("item") or "",
        qty=float(raw.get("qty") or 0),
        cancelled=raw.get("Cancelled") == CANCELLED_MARKER,
        steps=steps,
    )


def patch_to_flat(patch: ItemPatch, catalog: StepCatalog = CATALOG) -> Dict[str, str]:
    """Flatten a patch into API columns, using ``""`` to clear a column."""
    flat: Dict[str, str] = {}
    if "cancelled" in patch.model_fields_set and patch.cancelled is not None:
        flat["Cancelled"] = CANCELLED_MARKER if patch.cancelled else ""
    for n, step_patch in patch.steps.items():
        fields_set = step_patch.model_fields_set
        if "planned" in fields_set:
            flat[f"Planned_{n}"] = step_patch.planned.isoformat() if step_patch.planned else ""
        if "actual" in fields_set:
            flat[f"Actual_{n}"] = step_patch.actual.isoformat() if step_patch.actual else ""
        if "responses" in fields_set:
            responses = step_patch.responses or {}
            for name in catalog.get(n).fields:
                flat[name] = responses.get(name, "")
    return flat


def config_from_api(raw: Dict[str, Any]) -> StepConfig:
    return StepConfig(
        step=raw["step"],
        step_name=raw.get("stepName", ""),
        doer_name=raw.get("doerName", ""),
        tat_value=raw.get("tatValue", 1),
        tat_unit=raw.get("tatUnit", "hours"),
    )


def config_to_api(config: StepConfig) -> Dict[str, Any]:
    return {
        "step": config.step,
        "stepName": config.step_name,
        "doerName": config.doer_name,
        "tatValue": config.tat_value,
        "tatUnit": config.tat_unit,
    }


class HttpItemRepository(ItemRepository):
    """Persist follow-up state through the order-tracking REST API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(f"{method} {path} failed: {exc}")
            raise PersistenceError(f"{method} {path} failed: {exc}") from exc
        return response.json()

    # ------------------------------------------------------------------
    async def fetch_items(self) -> list[Item]:
        orders = await self._request("GET", "/api/o2d")
        return [
            item_from_flat(raw, order)
            for order in orders
            for raw in order.get("items", [])
        ]

    async def fetch_step_config(self) -> list[StepConfig]:
        data = await self._request("GET", "/api/o2d-config")
        return [config_from_api(raw) for raw in data.get("config") or []]

    async def apply_patch(self, target: PatchTarget, patch: ItemPatch) -> list[Item]:
        body: Dict[str, Any] = {"operation_type": "followup", **patch_to_flat(patch)}
        if target.kind == "item":
            body["id"] = target.id
        else:
            body["party_id"] = target.id
        await self._request("PUT", "/api/o2d", json=body)

        # the API acknowledges without a uniform body; read back server truth
        items = await self.fetch_items()
        if target.kind == "item":
            return [item for item in items if item.id == target.id]
        return [
            item for item in items if item.party_id == target.id and not item.cancelled
        ]

    async def create_item(self, item: Item) -> Item:
        planned = item.step(1).planned
        body = {
            "party_id": item.party_id,
            "party_name": item.party_name,
            "items": [{"item": item.item, "qty": item.qty}],
            "Planned_1": planned.isoformat() if planned else "",
        }
        order = await self._request("POST", "/api/o2d", json=body)
        created = order.get("items") or []
        if not created:
            return item
        return item_from_flat(created[0], order)

    async def save_step_config(self, configs: list[StepConfig]) -> None:
        await self._request(
            "PUT", "/api/o2d-config", json={"config": [config_to_api(c) for c in configs]}
        )
