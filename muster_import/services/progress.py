from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm

"""Console progress for the employee stage (tqdm, TTY only).

Display only: nothing is reported back to the caller of ``run_import``. When
stdout is not a terminal (CI, pipes, log capture) no bar is created.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Single tqdm bar over the rows of one stage."""

    def __init__(self, total: int, *, description: str = "Importing rows") -> None:
        self.total = total
        self.description = description
        self.current = 0
        self.enabled = is_tty_enabled()
        self.pbar: Any | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total,
                desc=description,
                unit="row",
                leave=False,
                ncols=80,
                ascii=True,
            )

    def advance(self, label: str | None = None) -> None:
        self.current += 1
        if self.pbar is not None:
            if label:
                self.pbar.set_postfix_str(label[:24])
            self.pbar.update(1)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
