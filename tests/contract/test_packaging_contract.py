from __future__ import annotations

import re
import tomllib
from pathlib import Path

"""Packaging contract: declared interpreter floor covers the stdlib APIs in use."""

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def test_requires_python_covers_datetime_utc():
    # datetime.UTC (used for timestamps) was added in Python 3.11
    project = tomllib.loads((PROJECT_ROOT / "pyproject.toml").read_text(encoding="utf-8"))["project"]
    m = re.fullmatch(r">=\s*3\.(\d+)", project["requires-python"])
    assert m is not None
    assert int(m.group(1)) >= 11
