"""Command line interface for the O2D follow-up engine."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer

from o2d.bulk import BulkOperationCoordinator, BulkSubmission
from o2d.config import load_config
from o2d.delay import classify
from o2d.engine import ResetScope
from o2d.errors import FollowUpError
from o2d.persistence import get_repository
from o2d.reporting import is_delayed, step_counts
from o2d.session import FollowUpSession
from o2d.sync import SyncLoop

T = TypeVar("T")

app = typer.Typer(help="CLI for O2D follow-ups")

# Command groups
items_app = typer.Typer(help="Commands for inspecting and registering items")
followup_app = typer.Typer(help="Commands for advancing follow-up steps")
config_app = typer.Typer(help="Commands for step configuration")
report_app = typer.Typer(help="Commands for progress reports")

app.add_typer(items_app, name="items")
app.add_typer(followup_app, name="followup")
app.add_typer(config_app, name="config")
app.add_typer(report_app, name="report")


@app.callback()
def main() -> None:
    """O2D CLI entry point."""
    pass


async def _open_session() -> FollowUpSession:
    session = FollowUpSession.from_config(load_config(), repository=get_repository())
    await session.refresh()
    return session


def _run(action: Callable[[FollowUpSession], Awaitable[T]]) -> T:
    """Run ``action`` against a freshly synced session, reporting engine errors."""

    async def runner() -> T:
        session = await _open_session()
        return await action(session)

    try:
        return asyncio.run(runner())
    except FollowUpError as exc:
        typer.secho(f"Error: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


async def _loaded(session: FollowUpSession) -> FollowUpSession:
    return session


def _parse_responses(pairs: List[str]) -> dict[str, str]:
    responses = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise typer.BadParameter(f"Expected FIELD=VALUE, got '{pair}'")
        responses[name.strip()] = value
    return responses


def _parse_scope(value: str) -> ResetScope:
    if value == "all":
        return "all"
    try:
        return int(value)
    except ValueError:
        raise typer.BadParameter("Use a step number or 'all'") from None


@items_app.command("list")
def items_list(
    delayed: bool = typer.Option(False, help="Only show items delayed at any step"),
) -> None:
    """List items with their pending step."""

    session = _run(_loaded)
    rows = [item for item in session.items if not delayed or is_delayed(item)]
    if not rows:
        typer.echo("No items found")
        return
    for item in rows:
        pending = session.engine.determine_pending_step(item)
        state = "complete" if pending is None else f"step {pending}"
        flag = "\tcancelled" if item.cancelled else ""
        typer.echo(f"{item.id}\t{item.party_id}\t{item.item}\t{item.qty:g}\t{state}{flag}")


@items_app.command("show")
def items_show(item_id: int) -> None:
    """Show every step of an item with its planned/actual times and delay."""

    session = _run(_loaded)
    item = next((i for i in session.items if i.id == item_id), None)
    if item is None:
        typer.echo("Item not found")
        raise typer.Exit(code=1)
    typer.echo(f"Item {item.id}: {item.item} x {item.qty:g} (party {item.party_id})")
    if item.cancelled:
        typer.echo("Cancelled")
    for definition in session.engine.catalog:
        record = item.step(definition.number)
        delay = classify(record.planned, record.actual)
        line = f"- {definition.number}. {definition.name}: planned={record.planned} actual={record.actual}"
        if delay.display:
            line += f" [{delay.display}]"
        if record.responses:
            line += f" {record.responses}"
        typer.echo(line)


@items_app.command("create")
def items_create(
    item_id: int,
    party_id: int,
    item: str,
    qty: float,
    party_name: Optional[str] = None,
) -> None:
    """Register an item and schedule its first step."""

    created = _run(
        lambda s: s.create_item(item_id, party_id, item, qty, party_name=party_name)
    )
    typer.echo(f"Item {created.id} created; step 1 planned for {created.step(1).planned}")


@followup_app.command("submit")
def followup_submit(
    target_id: int,
    step: int,
    response: List[str] = typer.Option(..., "--response", "-r", help="FIELD=VALUE"),
    party: bool = typer.Option(False, help="Treat TARGET_ID as a party id"),
) -> None:
    """Complete the pending step of an item (or of every item of a party)."""

    responses = _parse_responses(response)
    if party:
        updated = _run(lambda s: s.submit_party_step(target_id, step, responses))
    else:
        updated = [_run(lambda s: s.submit_step(target_id, step, responses))]
    for item in updated:
        typer.echo(f"Item {item.id}: step {step} completed")


@followup_app.command("bulk")
def followup_bulk(
    value: str,
    item: List[int] = typer.Option(..., "--item", "-i", help="Item id, repeatable"),
) -> None:
    """Answer the pending step of several items with one fixed-choice value."""

    async def action(session: FollowUpSession):
        selected = [i for i in session.items if i.id in set(item)]
        return await BulkOperationCoordinator(session).submit(
            selected, BulkSubmission(value=value)
        )

    result = _run(action)
    for updated in result.succeeded:
        typer.echo(f"Item {updated.id}: updated")
    for item_id, error in result.failures.items():
        typer.secho(f"Item {item_id}: {error}", fg=typer.colors.RED)
    if result.failures:
        raise typer.Exit(code=1)


@followup_app.command("reset")
def followup_reset(
    target_id: int,
    from_step: str = typer.Option("all", help="Step number or 'all'"),
    party: bool = typer.Option(False, help="Treat TARGET_ID as a party id"),
) -> None:
    """Clear recorded progress from a step onwards."""

    scope = _parse_scope(from_step)
    if party:
        _run(lambda s: s.reset_party_follow_up(target_id, scope))
    else:
        _run(lambda s: s.reset_follow_up(target_id, scope))
    typer.echo(f"Follow-up reset from {scope}")


@followup_app.command("cancel")
def followup_cancel(
    target_id: int,
    undo: bool = typer.Option(False, help="Remove the cancellation"),
    party: bool = typer.Option(False, help="Treat TARGET_ID as a party id"),
) -> None:
    """Flag an item (or a party's items) as cancelled."""

    if party:
        _run(lambda s: s.set_party_cancelled(target_id, not undo))
    else:
        _run(lambda s: s.set_cancelled(target_id, not undo))
    typer.echo("Cancellation removed" if undo else "Cancelled")


@config_app.command("show")
def config_show() -> None:
    """Show the TAT and doer of every step."""

    session = _run(_loaded)
    for definition in session.engine.catalog:
        config = session.engine.scheduler.tat_for(definition.number)
        doer = config.doer_name or "-"
        typer.echo(
            f"{definition.number}\t{definition.name}\t{config.tat_value:g} {config.tat_unit}\t{doer}"
        )


@report_app.command("steps")
def report_steps() -> None:
    """Count active items pending at each step."""

    session = _run(_loaded)
    for key, value in step_counts(session.items, session.engine).items():
        typer.echo(f"{key}\t{value}")


@app.command("sync")
def sync(
    lifespan: Optional[float] = typer.Option(None, help="Seconds to keep syncing"),
) -> None:
    """Keep refreshing the local view until stopped or the lifespan expires."""

    async def action(session: FollowUpSession) -> SyncLoop:
        loop = SyncLoop(session, interval=load_config().sync.interval_seconds)
        loop.start(lifespan=lifespan)
        await loop.wait()
        return loop

    loop = _run(action)
    typer.echo(f"Sync finished after {loop.ticks} tick(s), {loop.failures} failure(s)")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
