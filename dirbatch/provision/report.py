"""Formats the end-of-batch summary as terminal output or structured JSON.

Two output modes are supported:

- **Terminal**: one line per user with its status and cause, group link
  problems indented below it, and a footer with counts per status.
- **JSON**: Machine-readable output with ``summary`` and ``results`` keys,
  suitable for pasting into a ticket or feeding a script.

Generated passwords never appear in either mode.
"""

import json
from collections import Counter
from typing import Dict, List

from ..models import LinkStatus, ProvisionOutcome, ProvisionStatus
from ..prompts import InputProvider

# Maps status to (display label, output style)
_STATUS_LABELS = {
    ProvisionStatus.CREATED: ("CREATED ", "success"),
    ProvisionStatus.PARTIALLY_LINKED: ("PARTIAL ", "warning"),
    ProvisionStatus.SKIPPED_DUPLICATE: ("EXISTS  ", "dim"),
    ProvisionStatus.SKIPPED_BY_OPERATOR: ("SKIPPED ", "dim"),
    ProvisionStatus.CREATION_FAILED: ("FAILED  ", "error"),
}

_FOOTER_LABELS = (
    (ProvisionStatus.CREATED, "created"),
    (ProvisionStatus.PARTIALLY_LINKED, "partially linked"),
    (ProvisionStatus.SKIPPED_DUPLICATE, "already existed"),
    (ProvisionStatus.SKIPPED_BY_OPERATOR, "skipped"),
    (ProvisionStatus.CREATION_FAILED, "failed"),
)


def count_by_status(outcomes: List[ProvisionOutcome]) -> Dict[ProvisionStatus, int]:
    """Count outcomes per status; every status is present, zero included."""
    counts = Counter(o.status for o in outcomes)
    return {status: counts.get(status, 0) for status in ProvisionStatus}


def print_summary(
    outcomes: List[ProvisionOutcome],
    out: InputProvider,
    json_output: bool = False,
    version: str = "",
    timestamp: str = "",
):
    """Print the batch summary in terminal or JSON format."""
    if json_output:
        _print_json(outcomes, out, version=version, timestamp=timestamp)
    else:
        _print_terminal(outcomes, out)


def _print_terminal(outcomes: List[ProvisionOutcome], out: InputProvider):
    out.tell("")
    out.tell("Batch Summary", style="heading")
    out.tell("=" * 50, style="dim")

    for outcome in outcomes:
        label, style = _STATUS_LABELS[outcome.status]
        name = outcome.account_name or "(unnamed)"
        line = f"  {outcome.index:>3}. [{label}] {name}"
        if outcome.ref:
            line += f"  {outcome.ref}"
        out.tell(line, style=style)
        if outcome.message:
            out.tell(f"         {outcome.message}", style="dim")
        for link in outcome.links:
            if link.status is not LinkStatus.LINKED:
                detail = f": {link.message}" if link.message else ""
                out.tell(f"         {link.identifier} -> {link.status.value}{detail}", style="dim")

    counts = count_by_status(outcomes)
    parts = [f"{counts[status]} {text}" for status, text in _FOOTER_LABELS if counts[status]]
    parts.append(f"{len(outcomes)} total")
    out.tell("=" * 50, style="dim")
    out.tell("  " + ", ".join(parts))
    out.tell("")


def _print_json(
    outcomes: List[ProvisionOutcome],
    out: InputProvider,
    version: str = "",
    timestamp: str = "",
):
    """Render the summary as structured JSON with per-status counts."""
    counts = count_by_status(outcomes)
    output = {
        "dirbatch_version": version,
        "timestamp": timestamp,
        "summary": {"total": len(outcomes), **{s.value: n for s, n in counts.items()}},
        "results": [o.to_dict() for o in outcomes],
    }
    out.tell(json.dumps(output, indent=2))
