from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

"""Config loader for config/import.yml.

Responsibilities:
- load YAML and validate it against the bundled config_schema.json
- apply defaults (timezone=UTC, ESIC ceiling 21000, 26 working days ...)
- apply environment overrides (MUSTER_COMPANY_ID, DATABASE_URL / PG*)

Environment values win over YAML so that a local .env (loaded by the CLI with
override) decides which database an import writes to.
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "DatabaseConfig",
    "StatutorySettings",
    "ImportDefaults",
    "ImportConfig",
    "load_config",
    "default_config",
    "apply_env_overrides",
    "resolve_dsn",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")

COMPLIANCE_REGIMES = ("legacy_acts", "labour_codes")


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class DatabaseConfig:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class StatutorySettings:
    compliance_regime: str = "legacy_acts"  # legacy_acts | labour_codes
    esic_ceiling: float = 21000.0
    lwf_applicable: bool = True


@dataclass(frozen=True)
class ImportDefaults:
    default_working_days: int = 26
    header_scan_rows: int = 30


@dataclass(frozen=True)
class ImportConfig:
    company_id: str | None = None
    timezone: str = "UTC"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    statutory: StatutorySettings = field(default_factory=StatutorySettings)
    imports: ImportDefaults = field(default_factory=ImportDefaults)
    profiles_path: Path | None = None


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the bundled JSON schema.

    Raises:
        ConfigError: schema file missing or unreadable, or validation failed
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        where = f" at '{location}'" if location else ""
        raise ConfigError(f"config validation failed{where}: {e.message}") from e


def _build(data: dict[str, Any]) -> ImportConfig:
    db_raw = data.get("database") or {}
    stat_raw = data.get("statutory") or {}
    imp_raw = data.get("import") or {}
    profiles = data.get("profiles_path")
    return ImportConfig(
        company_id=data.get("company_id"),
        timezone=data.get("timezone", "UTC"),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
        statutory=StatutorySettings(
            compliance_regime=stat_raw.get("compliance_regime", "legacy_acts"),
            esic_ceiling=float(stat_raw.get("esic_ceiling", 21000)),
            lwf_applicable=bool(stat_raw.get("lwf_applicable", True)),
        ),
        imports=ImportDefaults(
            default_working_days=int(imp_raw.get("default_working_days", 26)),
            header_scan_rows=int(imp_raw.get("header_scan_rows", 30)),
        ),
        profiles_path=Path(profiles).expanduser() if profiles else None,
    )


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")

    _validate_config_schema(data)
    return apply_env_overrides(_build(data))


def default_config() -> ImportConfig:
    """Built-in defaults (used when no config file exists), env applied."""
    return apply_env_overrides(ImportConfig())


def apply_env_overrides(cfg: ImportConfig, environ: dict[str, str] | None = None) -> ImportConfig:
    env = os.environ if environ is None else environ
    company = env.get("MUSTER_COMPANY_ID")
    if company:
        cfg = replace(cfg, company_id=company)
    return cfg


def resolve_dsn(db: DatabaseConfig, environ: dict[str, str] | None = None) -> str:
    """Connection string with the precedence env DSN > YAML DSN > PG* env > YAML fields."""
    env = os.environ if environ is None else environ
    dsn = env.get("DATABASE_URL") or env.get("PGDSN") or db.dsn
    if dsn:
        return dsn
    host = env.get("PGHOST", db.host or "localhost")
    port = env.get("PGPORT", str(db.port) if db.port else "5432")
    user = env.get("PGUSER", db.user or "postgres")
    password = env.get("PGPASSWORD", db.password or "")
    database = env.get("PGDATABASE", db.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn
