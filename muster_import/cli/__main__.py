from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pandas as pd
import psycopg2
from dotenv import load_dotenv

from muster_import.config.loader import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    ImportConfig,
    default_config,
    load_config,
    resolve_dsn,
)
from muster_import.db.errors import sanitize_store_error
from muster_import.db.memory_store import MemoryPayrollStore
from muster_import.db.postgres_store import PostgresPayrollStore
from muster_import.db.store import PayrollStore, StoreError
from muster_import.excel.mapper import SchemaError
from muster_import.excel.reader import WorkbookError, cell_text
from muster_import.logging.error_log import ErrorLogBuffer
from muster_import.logging.init import log_summary, setup_logging
from muster_import.models.column_mapping import ColumnRole
from muster_import.models.entities import ImportMode
from muster_import.models.parsed_row import ParseOutcome
from muster_import.services import session as stages
from muster_import.services.orchestrator import (
    ImportRejected,
    PipelineError,
    importable_rows,
    run_import,
)
from muster_import.services.profiles import MappingProfileStore, ProfileError
from muster_import.services.summary import build_import_message, render_summary_line

"""CLI entrypoint: ``python -m muster_import.cli REGISTER.xlsx --month 2025-03``.

Flow: load workbook -> detect header -> map columns (auto, profile, --map)
-> parse -> preview -> confirm -> import -> summary.

The preview is always printed before anything is written, and nothing is
written when no row is importable.

Exit codes:
    0  success (or preview / profile action only)
    2  import finished, but some rows had issues or could not be saved
    1  fatal: config, workbook, mapping, rejected import, stage failure
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

PREVIEW_ROWS = 50
INSPECT_ROWS = 5


@contextmanager
def _db_connection(cfg: ImportConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """psycopg2 connection in autocommit mode; the store issues BEGIN/COMMIT itself.

    Connection parameters: .env / process env first, config/import.yml second
    (see ``resolve_dsn``).
    """
    try:
        conn = psycopg2.connect(resolve_dsn(cfg.database))
    except psycopg2.Error as e:
        raise StoreError(f"database connection failed: {e}", code=getattr(e, "pgcode", None)) from e
    conn.autocommit = True
    cur = conn.cursor()
    try:
        yield cur
    finally:
        cur.close()
        conn.close()


@contextmanager
def _open_store(cfg: ImportConfig, dry_run: bool) -> Iterator[tuple[PayrollStore, str]]:
    # DISABLE_DB_CONNECT=1 keeps tests and demos off the database
    if dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
        yield MemoryPayrollStore(), "memory"
        return
    with _db_connection(cfg) as cur:
        yield PostgresPayrollStore(cur), "live"


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="muster-import",
        description="Import a muster roll / wage register (Form II) workbook into payroll",
    )
    p.add_argument("file", nargs="?", help="Workbook (.xlsx) to import")
    p.add_argument("--month", help="Target month, YYYY-MM")
    p.add_argument("--working-days", type=int, default=None, help="Working days in the month (1-31)")
    p.add_argument(
        "--mode",
        choices=[m.value for m in ImportMode],
        default=ImportMode.ALL.value,
        help="all: employees+attendance+payroll, attendance: attendance only, wages: employees only",
    )
    p.add_argument("--company-id", help="Company id (overrides config / MUSTER_COMPANY_ID)")
    p.add_argument("--profile", help="Use a saved column mapping profile")
    p.add_argument("--save-profile", metavar="NAME", help="Save the final column mapping as a profile")
    p.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="ROLE=COL",
        help="Override a column role with a 1-based column number, or ROLE=none to unmap",
    )
    p.add_argument("--preview-only", action="store_true", help="Print the preview and exit")
    p.add_argument("--yes", action="store_true", help="Import without asking for confirmation")
    p.add_argument("--dry-run", action="store_true", help="Run the import against an in-memory store")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=None, help=f"Config file (default {DEFAULT_CONFIG_PATH})")
    p.add_argument("--list-profiles", action="store_true", help="List saved mapping profiles and exit")
    p.add_argument("--delete-profile", metavar="NAME", help="Delete a saved mapping profile and exit")
    p.add_argument("--inspect-data", action="store_true", help="Print detected layout & first rows then exit")
    return p.parse_args(argv)


def _load_configuration(path: Path | None) -> ImportConfig:
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return default_config()


def _parse_overrides(items: list[str]) -> dict[ColumnRole, int | None]:
    """``name=2`` -> {NAME: 1}; column numbers are 1-based as shown in the preview."""
    overrides: dict[ColumnRole, int | None] = {}
    for item in items:
        role_text, sep, col_text = item.partition("=")
        if not sep:
            raise SchemaError(f"--map expects ROLE=COL, got {item!r}")
        try:
            role = ColumnRole(role_text.strip().lower())
        except ValueError as e:
            roles = ", ".join(r.value for r in ColumnRole)
            raise SchemaError(f"unknown column role {role_text!r} (roles: {roles})") from e
        col_text = col_text.strip().lower()
        if col_text in ("none", ""):
            overrides[role] = None
            continue
        if not col_text.isdigit() or int(col_text) < 1:
            raise SchemaError(f"column for {role.value} must be a number >= 1, got {col_text!r}")
        overrides[role] = int(col_text) - 1
    return overrides


def _print_inspect(session: stages.ImportSession) -> None:
    assert session.matrix is not None and session.header_row is not None
    print(f"WORKBOOK: {session.source_name} rows={len(session.matrix)}")
    print(f"  header_row={session.header_row + 1} data_start={session.data_start + 1 if session.data_start is not None else '-'}")
    print("  headers=", [f"{i + 1}:{h}" for i, h in enumerate(session.headers)])
    start = session.data_start or 0
    for idx, row in enumerate(session.matrix[start:start + INSPECT_ROWS], start=start + 1):
        print(f"  row {idx}:", [cell_text(c) for c in row])


def _print_mapping(session: stages.ImportSession) -> None:
    mapping = session.mapping
    assert mapping is not None
    source = f"profile '{session.profile_name}'" if session.profile_name else "auto-detected"
    print(f"Column mapping ({source}), confidence {session.confidence:.0%}:")
    for role in ColumnRole:
        index = mapping.get(role)
        if index is None:
            continue
        header = session.headers[index] if index < len(session.headers) else "?"
        print(f"  {role.label:<22} col {index + 1:>3}  {header}")


def _preview_frame(outcome: ParseOutcome, mode: ImportMode) -> pd.DataFrame:
    importable = {r.row_number for r in importable_rows(outcome.rows, mode)}
    records = []
    for r in outcome.rows:
        if r.is_valid:
            status = "ok"
        elif r.row_number in importable:
            status = "warn"
        else:
            status = "error"
        records.append({
            "row": r.row_number,
            "name": r.name,
            "code": r.emp_code or "",
            "days": r.attendance.days_worked,
            "gross": r.gross_wages,
            "net": r.net_wages_paid,
            "status": status,
            "issues": "; ".join(r.errors),
        })
    return pd.DataFrame.from_records(records, columns=["row", "name", "code", "days", "gross", "net", "status", "issues"])


def _print_preview(outcome: ParseOutcome, mode: ImportMode) -> None:
    frame = _preview_frame(outcome, mode)
    if frame.empty:
        print("Preview: no employee rows found")
        return
    print(f"Preview ({len(frame)} rows, {len(outcome.valid)} ok, {len(outcome.invalid)} with issues):")
    print(frame.head(PREVIEW_ROWS).to_string(index=False))
    if len(frame) > PREVIEW_ROWS:
        print(f"... {len(frame) - PREVIEW_ROWS} more rows")
    if outcome.stopped_at is not None:
        print(f"(stopped at footer on row {outcome.stopped_at})")


def _confirm(count: int, mode: ImportMode, month: str) -> bool:
    try:
        answer = input(f"Import {count} rows ({mode.value}) for {month}? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # only read sys.argv when no argv is given; [] must stay empty under pytest
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        setup_logging(debug=True)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = _load_configuration(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    profiles = MappingProfileStore(cfg.profiles_path)
    if args.list_profiles:
        for profile in profiles.list_profiles():
            print(f"{profile.name}\t{profile.created_at.isoformat()}\t{profile.mapping.to_dict()}")
        return EXIT_SUCCESS_ALL
    if args.delete_profile:
        try:
            profiles.delete_profile(args.delete_profile)
        except ProfileError as e:
            logger.error(f"profile: {e}")
            return EXIT_FATAL
        return EXIT_SUCCESS_ALL

    if not args.file:
        logger.error("no workbook given")
        return EXIT_FATAL

    mode = ImportMode(args.mode)
    session = stages.ImportSession()
    try:
        session, _ = stages.load_workbook(session, Path(args.file))
        session, _ = stages.detect_layout(session, cfg.imports.header_scan_rows)
        if args.inspect_data:
            _print_inspect(session)
            return EXIT_SUCCESS_ALL
        if args.profile:
            session, _ = stages.apply_profile(session, profiles.get_profile(args.profile))
        else:
            session, _ = stages.auto_map(session)
        if args.map:
            session, _ = stages.override_columns(session, _parse_overrides(args.map))
        session, outcome = stages.parse(session)
    except WorkbookError as e:
        logger.error(f"workbook: {e}")
        return EXIT_FATAL
    except (SchemaError, stages.SessionError) as e:
        logger.error(f"mapping: {e}")
        return EXIT_FATAL
    except ProfileError as e:
        logger.error(f"profile: {e}")
        return EXIT_FATAL

    if args.save_profile and session.mapping is not None:
        try:
            profiles.save_profile(args.save_profile, session.mapping)
        except ProfileError as e:
            logger.error(f"profile: {e}")
            return EXIT_FATAL

    _print_mapping(session)
    _print_preview(outcome, mode)

    error_log = ErrorLogBuffer()
    error_log.record_row_issues(session.source_name, outcome.invalid)

    def _flush_errors() -> None:
        path = error_log.flush()
        if path is not None:
            logger.info(f"error details written to {path}")

    if args.preview_only:
        _flush_errors()
        return EXIT_SUCCESS_ALL

    candidates = importable_rows(outcome.rows, mode)
    if not candidates:
        logger.error("no importable rows: fix the rows marked as error and retry")
        _flush_errors()
        return EXIT_FATAL
    if not args.month:
        logger.error("--month is required to import")
        _flush_errors()
        return EXIT_FATAL

    working_days = args.working_days if args.working_days is not None else cfg.imports.default_working_days
    company_id = args.company_id or cfg.company_id

    if not args.yes:
        if not sys.stdin.isatty():
            logger.error("refusing to import without confirmation: pass --yes")
            _flush_errors()
            return EXIT_FATAL
        if not _confirm(len(candidates), mode, args.month):
            logger.info("import cancelled")
            _flush_errors()
            return EXIT_SUCCESS_ALL

    try:
        with _open_store(cfg, args.dry_run) as (store, db_mode):
            logger.info(f"store={db_mode}")
            summary = run_import(
                outcome.rows,
                store=store,
                company_id=company_id,
                month=args.month,
                working_days=working_days,
                mode=mode,
                settings=cfg.statutory,
                source_name=session.source_name,
            )
    except ImportRejected as e:
        logger.error(f"rejected: {e}")
        _flush_errors()
        return EXIT_FATAL
    except PipelineError as e:
        logger.error(f"import: {e}")
        _flush_errors()
        return EXIT_FATAL
    except StoreError as e:
        logger.error(f"database: {sanitize_store_error(e)}")
        _flush_errors()
        return EXIT_FATAL

    error_log.record_import_failures(session.source_name, summary)
    _flush_errors()

    print(build_import_message(summary))
    # log_summary adds the "SUMMARY " label itself
    log_summary(render_summary_line(summary)[len("SUMMARY "):])

    if summary.has_failures:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
