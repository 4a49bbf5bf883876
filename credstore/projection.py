"""
Row projection — candidate Cores to output rows and delete marks.

Pure: nothing here prints, writes or deletes. The reporter commits the result.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from credstore.filters import FilterSpec
from credstore.models import Core, origin_address

COLUMNS: tuple[str, ...] = (
    "host",
    "origin",
    "service",
    "public",
    "private",
    "realm",
    "private_type",
)

Row = tuple[str, str, str, str, str, str, str]


@dataclass(frozen=True)
class CoreProjection:
    core: Core
    rows: tuple[Row, ...] = ()
    skipped: bool = False
    delete: bool = False


@dataclass
class ProjectionResult:
    rows: list[Row] = field(default_factory=list)
    doomed: list[Core] = field(default_factory=list)

    @property
    def hosts(self) -> list[str]:
        """Distinct non-blank row hosts in first-seen order."""
        return list(dict.fromkeys(row[0] for row in self.rows if row[0]))


def _credential_cells(core: Core) -> tuple[str, str, str, str]:
    return (
        str(core.public) if core.public else "",
        str(core.private) if core.private else "",
        str(core.realm) if core.realm else "",
        core.type_label,
    )


def _excluded_by_blank_rules(core: Core, spec: FilterSpec) -> bool:
    # An empty pattern asks for blank values only; an absent Public/Private counts as blank.
    if spec.user_regex == "" and core.public is not None and not core.public.is_blank:
        return True
    if spec.password_regex == "" and core.private is not None and not core.private.is_blank:
        return True
    return False


def project_core(core: Core, spec: FilterSpec) -> CoreProjection:
    """Expand one candidate Core into zero or more rows."""
    origin = origin_address(core.origin)
    if origin and spec.origin_ranges and not any(r.contains(origin) for r in spec.origin_ranges):
        return CoreProjection(core=core, skipped=True)

    if _excluded_by_blank_rules(core, spec):
        return CoreProjection(core=core, skipped=True)

    cells = _credential_cells(core)
    rows: list[Row] = []
    if not core.logins:
        if not spec.origin_ranges:
            rows.append(("", "", "", *cells))
    else:
        for login in core.logins:
            address = login.service.address
            if spec.host_ranges and not any(r.contains(address) for r in spec.host_ranges):
                continue
            rows.append((address, origin, login.service.display, *cells))

    return CoreProjection(core=core, rows=tuple(rows), delete=spec.delete)


def project(candidates: Iterable[Core], spec: FilterSpec) -> ProjectionResult:
    """Project every candidate, marking each non-skipped Core for deletion once."""
    result = ProjectionResult()
    marked: set[int] = set()
    for core in candidates:
        projection = project_core(core, spec)
        result.rows.extend(projection.rows)
        if projection.delete and core.id not in marked:
            marked.add(core.id)
            result.doomed.append(core)
    return result
