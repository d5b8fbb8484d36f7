from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.outcome import CommitProgress

"""Commit progress display with tqdm (TTY only).

- Single tqdm instance, disabled in non-TTY (CI) to avoid ANSI spam
- Driven by the CommitProgress snapshots the executor publishes after each row
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Row progress bar for a commit run.

    ``on_progress`` can be handed straight to CommitExecutor as its observer.
    """

    def __init__(self, total_rows: int, *, description: str = "Importing rows", enabled: bool | None = None) -> None:
        self.total_rows = total_rows
        self.description = description
        self.processed = 0
        self.failed = 0

        self.enabled = is_tty_enabled() if enabled is None else enabled
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def on_progress(self, progress: CommitProgress) -> None:
        step = progress.processed - self.processed
        self.processed = progress.processed
        self.failed = sum(1 for o in progress.outcomes if not o.success)
        if self.enabled and self.pbar is not None:
            if step > 0:
                self.pbar.update(step)
            self.pbar.set_postfix(failed=self.failed)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
