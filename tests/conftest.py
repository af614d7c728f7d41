# Shared pytest fixtures
from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from muster_import.excel.reader import WorkbookMatrix, matrix_from_rows
from muster_import.logging.init import reset_logging
from tests.builders import employee_row, form_ii_rows, write_xlsx


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
        for var in ("MUSTER_COMPANY_ID", "DATABASE_URL", "PGDSN"):
            monkeypatch.delenv(var, raising=False)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """company_id: acme
timezone: Asia/Kolkata
profiles_path: ./config/profiles.json
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: payroll
statutory:
  compliance_regime: legacy_acts
  esic_ceiling: 21000
  lwf_applicable: true
import:
  default_working_days: 26
  header_scan_rows: 30
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def form_ii_matrix() -> WorkbookMatrix:
    return matrix_from_rows(form_ii_rows([
        employee_row(1, "Asha Rao"),
        employee_row(2, "Ravi Patil", gross=18000, net=16500, normal=14000, hra=2800),
        employee_row(3, "Meena Iyer", advances=500, net=13500),
    ]))


@pytest.fixture()
def register_xlsx(temp_workdir: Path) -> Path:
    """Three employees; the third has no wages and no date of joining."""
    rows = form_ii_rows([
        employee_row(1, "Asha Rao"),
        employee_row(2, "Ravi Patil", gross=18000, net=16500, normal=14000, hra=2800),
        employee_row(3, "Meena Iyer", gross="", net="", doj=""),
    ])
    return write_xlsx(temp_workdir / "data" / "form_ii.xlsx", rows)
