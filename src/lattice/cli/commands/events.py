"""events: show the event ledger."""

import itertools
import json

import click

from lattice.cli.ensure import Ensure, handle_lattice_errors
from lattice.cli.output import format_events_table, machine_output, print_renderable, user_output
from lattice.core.context import LatticeContext
from lattice.engine.ledger import (
    Aborted,
    Committed,
    DivergenceObserved,
    DoctorApplied,
    DoctorProposed,
    Event,
    IntentRecorded,
    UndoApplied,
)


def describe_event(event: Event) -> str:
    if isinstance(event, IntentRecorded):
        return f"{event.command} ({event.op_id[:8]})"
    if isinstance(event, Committed):
        return f"{event.op_id[:8]} -> {event.fingerprint_after[:12]}"
    if isinstance(event, Aborted):
        return f"{event.op_id[:8]}: {event.reason}"
    if isinstance(event, DivergenceObserved):
        return ", ".join(event.changed_refs)
    if isinstance(event, DoctorProposed):
        return ", ".join(event.fix_ids)
    if isinstance(event, DoctorApplied):
        return f"{', '.join(event.fix_ids)} -> {event.fingerprint_after[:12]}"
    if isinstance(event, UndoApplied):
        return f"{event.undone_op_id[:8]} ({event.refs_restored} refs restored)"
    return ""


@click.command("events")
@click.option("--limit", type=int, default=20, show_default=True, help="Maximum events to show.")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format (text or json)",
)
@click.pass_obj
@handle_lattice_errors
def events_cmd(ctx: LatticeContext, limit: int, output_format: str) -> None:
    """Show the event ledger, newest first."""
    Ensure.invariant(limit > 0, "--limit must be a positive number")
    ctx.require_repo()
    events = list(itertools.islice(ctx.ledger().events(), limit))

    if output_format == "json":
        machine_output(json.dumps([e.model_dump(mode="json") for e in events], indent=2))
        return

    if not events:
        user_output("No events recorded")
        return
    rows = [
        {
            "timestamp": e.timestamp.isoformat(timespec="seconds"),
            "type": e.type,
            "detail": describe_event(e),
        }
        for e in events
    ]
    print_renderable(format_events_table(rows))
