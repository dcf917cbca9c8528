"""REST backend against a mocked order-tracking API."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from o2d.contracts import Item, ItemPatch, PatchTarget, StepConfig, StepPatch
from o2d.errors import PersistenceError
from o2d.persistence.rest import HttpItemRepository, item_from_flat, patch_to_flat

NOW = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


class FakeOrderApi:
    """Minimal in-process stand-in for the order-tracking service."""

    def __init__(self):
        self.orders = [
            {
                "party_id": 10,
                "party_name": "Acme",
                "items": [
                    {"id": 1, "item": "Steel Rod", "qty": 4, "Planned_1": NOW.isoformat()},
                    {"id": 2, "item": "Pipe", "qty": "2", "Cancelled": "Cancelled"},
                ],
            }
        ]
        self.config = []
        self.requests = []

    def _rows(self):
        return [row for order in self.orders for row in order["items"]]

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        if request.url.path == "/api/o2d-config":
            if request.method == "PUT":
                self.config = body["config"]
            return httpx.Response(200, json={"config": self.config})
        if request.method == "GET":
            return httpx.Response(200, json=self.orders)
        if request.method == "PUT":
            columns = {k: v for k, v in body.items() if k not in ("operation_type", "id", "party_id")}
            for row in self._rows():
                if row["id"] == body.get("id") or (
                    "party_id" in body and row.get("Cancelled") != "Cancelled"
                ):
                    row.update(columns)
            return httpx.Response(200, json={"ok": True})
        if request.method == "POST":
            row = {"id": 3, **body["items"][0], "Planned_1": body["Planned_1"]}
            order = {"party_id": body["party_id"], "party_name": body["party_name"], "items": [row]}
            self.orders.append(order)
            return httpx.Response(201, json=order)
        return httpx.Response(405)


@pytest.fixture
def api():
    return FakeOrderApi()


@pytest.fixture
def repo(api):
    return HttpItemRepository("http://orders.test/", transport=httpx.MockTransport(api.handler))


def test_item_from_flat_reads_party_and_columns():
    item = item_from_flat(
        {"id": 7, "item": "Bolt", "qty": "3", "Destination": "Local", "Actual_1": NOW.isoformat(), "Revenue": ""},
        {"party_id": 5, "party_name": "Acme"},
    )

    assert (item.party_id, item.party_name, item.qty) == (5, "Acme", 3.0)
    assert item.step(1).actual == NOW
    assert item.step(1).responses == {"Destination": "Local"}
    assert item.step(7).responses == {}
    assert not item.cancelled


def test_patch_to_flat_clears_with_empty_strings():
    patch = ItemPatch(
        cancelled=False,
        steps={
            1: StepPatch(actual=None, responses={}),
            2: StepPatch(planned=NOW),
        },
    )

    assert patch_to_flat(patch) == {
        "Cancelled": "",
        "Actual_1": "",
        "Destination": "",
        "Planned_2": NOW.isoformat(),
    }


@pytest.mark.asyncio
async def test_fetch_items_flattens_orders(repo):
    items = await repo.fetch_items()

    assert [item.id for item in items] == [1, 2]
    assert items[0].party_name == "Acme"
    assert items[0].step(1).planned == NOW
    assert items[1].cancelled
    await repo.aclose()


@pytest.mark.asyncio
async def test_apply_patch_sends_followup_and_reads_back(repo, api):
    patch = ItemPatch(
        steps={
            1: StepPatch(actual=NOW, responses={"Destination": "Out Station"}),
            2: StepPatch(planned=NOW.replace(hour=11)),
        }
    )

    [item] = await repo.apply_patch(PatchTarget.for_item(1), patch)

    method, path, body = api.requests[0]
    assert (method, path) == ("PUT", "/api/o2d")
    assert body["operation_type"] == "followup"
    assert body["id"] == 1
    assert body["Destination"] == "Out Station"
    assert item.step(1).actual == NOW
    assert item.step(2).planned == NOW.replace(hour=11)
    await repo.aclose()


@pytest.mark.asyncio
async def test_party_patch_returns_active_items(repo, api):
    updated = await repo.apply_patch(PatchTarget.for_party(10), ItemPatch(steps={1: StepPatch(actual=NOW)}))

    assert [item.id for item in updated] == [1]
    assert api.requests[0][2]["party_id"] == 10
    await repo.aclose()


@pytest.mark.asyncio
async def test_create_item_posts_order(repo, api):
    item = Item(id=0, party_id=20, party_name="Beta", item="Wire", qty=5)
    item = item.apply_patch(ItemPatch(steps={1: StepPatch(planned=NOW)}))

    created = await repo.create_item(item)

    assert created.id == 3
    assert created.party_name == "Beta"
    assert created.step(1).planned == NOW
    await repo.aclose()


@pytest.mark.asyncio
async def test_step_config_uses_camel_case(repo, api):
    await repo.save_step_config([StepConfig(step=2, doer_name="Stores", tat_value=2, tat_unit="days")])

    assert api.config == [
        {"step": 2, "stepName": "", "doerName": "Stores", "tatValue": 2.0, "tatUnit": "days"}
    ]
    [config] = await repo.fetch_step_config()
    assert (config.step, config.doer_name, config.tat_unit) == (2, "Stores", "days")
    await repo.aclose()


@pytest.mark.asyncio
async def test_http_errors_become_persistence_errors():
    def unavailable(request):
        return httpx.Response(503)

    repo = HttpItemRepository("http://orders.test", transport=httpx.MockTransport(unavailable))

    with pytest.raises(PersistenceError):
        await repo.fetch_items()
    await repo.aclose()
