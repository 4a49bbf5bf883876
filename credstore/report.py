"""
Reporter — the commit phase of a `creds` listing.

Order of effects: render the table or write the CSV file, hand hosts to the
RHOSTS sink, then destroy the Cores marked for deletion. A failed write stops
the listing before anything is deleted.

Usage:
    from credstore.report import run_listing

    with open_repository() as repo:
        result = run_listing(repo, spec, workspace="acme-2026")
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.text import Text

from credstore.errors import ArtifactIOError
from credstore.filters import FilterSpec
from credstore.projection import COLUMNS, Row, project
from credstore.query import Repository, fetch_candidates
from credstore.targets import RhostsSink, set_rhosts_from_addrs

logger = logging.getLogger(__name__)


@dataclass
class ListingResult:
    rows: list[Row] = field(default_factory=list)
    hosts: list[str] = field(default_factory=list)
    deleted: int = 0


def build_table(rows: Sequence[Row]) -> Table:
    table = Table(title="Credentials", title_justify="left", header_style="bold")
    for column in COLUMNS:
        table.add_column(column, overflow="fold")
    for row in rows:
        # Text keeps credential values from being read as console markup
        table.add_row(*(Text(cell) for cell in row))
    return table


def to_csv(rows: Sequence[Row]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(COLUMNS)
    writer.writerows(rows)
    return output.getvalue()


def write_csv(rows: Sequence[Row], path: Path) -> None:
    """Overwrite ``path`` with the rows as CSV."""
    try:
        path.write_text(to_csv(rows), newline="")
    except OSError as e:
        raise ArtifactIOError(f"Cannot write creds to {path}: {e}") from e


def run_listing(
    repo: Repository,
    spec: FilterSpec,
    workspace: str,
    *,
    console: Console | None = None,
    rhosts_sink: RhostsSink | None = None,
    out: Callable[[str], None] = print,
) -> ListingResult:
    """Fetch, project and commit one listing."""
    candidates = fetch_candidates(repo, spec, workspace)
    projection = project(candidates, spec)
    result = ListingResult(rows=projection.rows, hosts=projection.hosts)

    if spec.output_path is None:
        (console or Console()).print(build_table(result.rows))
    else:
        write_csv(result.rows, spec.output_path)
        out(f"[*] Wrote creds to {spec.output_path}")

    if spec.rhosts:
        (rhosts_sink or set_rhosts_from_addrs)(result.hosts)

    for core in projection.doomed:
        if repo.destroy(core):
            result.deleted += 1
    if result.deleted > 0:
        logger.info("Deleted %d credential(s) from workspace %s", result.deleted, workspace)
        out(f"[*] Deleted {result.deleted} creds")

    return result
