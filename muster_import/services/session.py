from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from ..excel import locator, mapper
from ..excel.reader import WorkbookMatrix, read_workbook
from ..models.column_mapping import ColumnMapping, ColumnRole
from ..models.mapping_profile import MappingProfile
from ..models.parsed_row import ParseOutcome
from .row_parser import parse_rows

"""ImportSession: the upload-session state as an immutable value.

Each stage is a plain function ``(session, input) -> (session', output)``.
Nothing is stored on module level or mutated in place; callers keep the
latest session themselves. Changing the layout or the mapping drops any
previous parse outcome, so a stale preview can never be committed.
"""

__all__ = [
    "SessionError",
    "ImportSession",
    "load_workbook",
    "detect_layout",
    "auto_map",
    "apply_profile",
    "override_columns",
    "parse",
]


class SessionError(Exception):
    """Raised when a stage is called before the stage it depends on."""


@dataclass(frozen=True)
class ImportSession:
    source_name: str = ""
    matrix: WorkbookMatrix | None = None
    header_row: int | None = None
    data_start: int | None = None
    headers: tuple[str, ...] = ()
    mapping: ColumnMapping | None = None
    confidence: float = 0.0
    profile_name: str | None = None  # profile the current mapping came from
    outcome: ParseOutcome | None = None

    @staticmethod
    def from_matrix(matrix: WorkbookMatrix, source_name: str = "<memory>") -> ImportSession:
        return ImportSession(source_name=source_name, matrix=matrix)


def _require_matrix(session: ImportSession) -> WorkbookMatrix:
    if session.matrix is None:
        raise SessionError("no workbook loaded")
    return session.matrix


def load_workbook(session: ImportSession, path: Path) -> tuple[ImportSession, WorkbookMatrix]:
    """Read the workbook; every later stage result is reset."""
    matrix = read_workbook(path)
    return ImportSession.from_matrix(matrix, source_name=path.name), matrix


def detect_layout(
    session: ImportSession, max_scan_rows: int = locator.DEFAULT_SCAN_ROWS
) -> tuple[ImportSession, tuple[int, int]]:
    matrix = _require_matrix(session)
    header_row, data_start = locator.locate(matrix, max_scan_rows=max_scan_rows)
    headers = tuple(locator.header_labels(matrix, header_row))
    updated = replace(
        session,
        header_row=header_row,
        data_start=data_start,
        headers=headers,
        mapping=None,
        confidence=0.0,
        profile_name=None,
        outcome=None,
    )
    return updated, (header_row, data_start)


def auto_map(session: ImportSession) -> tuple[ImportSession, tuple[ColumnMapping, float]]:
    if session.header_row is None:
        raise SessionError("layout not detected; run detect_layout first")
    mapping, confidence = mapper.infer(session.headers)
    updated = replace(session, mapping=mapping, confidence=confidence, profile_name=None, outcome=None)
    return updated, (mapping, confidence)


def apply_profile(session: ImportSession, profile: MappingProfile) -> tuple[ImportSession, ColumnMapping]:
    """Replace the current mapping by a saved profile (no header check)."""
    _require_matrix(session)
    updated = replace(
        session,
        mapping=profile.mapping,
        confidence=mapper.mapping_confidence(profile.mapping),
        profile_name=profile.name,
        outcome=None,
    )
    return updated, profile.mapping


def override_columns(
    session: ImportSession, overrides: Mapping[ColumnRole, int | None]
) -> tuple[ImportSession, ColumnMapping]:
    base = session.mapping if session.mapping is not None else ColumnMapping()
    mapping = mapper.apply_overrides(base, overrides)
    updated = replace(
        session,
        mapping=mapping,
        confidence=mapper.mapping_confidence(mapping),
        outcome=None,
    )
    return updated, mapping


def parse(session: ImportSession) -> tuple[ImportSession, ParseOutcome]:
    """Parse the data rows with the current mapping.

    Raises:
        SessionError: no workbook, layout or mapping yet
        SchemaError: mapping does not fit the sheet
    """
    matrix = _require_matrix(session)
    if session.data_start is None:
        raise SessionError("layout not detected; run detect_layout first")
    if session.mapping is None:
        raise SessionError("no column mapping; run auto_map, apply_profile or override_columns first")
    outcome = parse_rows(matrix, session.data_start, session.mapping)
    return replace(session, outcome=outcome), outcome
