from __future__ import annotations

from collections.abc import Iterable

from ..models.commit_result import ImportSummary, RowFailure
from ..models.outcome import EntityType, ImportAction, ImportOutcome

"""Commit summary aggregation and SUMMARY line rendering.

Format:
SUMMARY rows={done}/{selected} people_created={n} people_updated={n}
orgs_created={n} orgs_updated={n} failed={n} elapsed_sec={sec}

Entity counts include writes made by rows that failed later on (e.g. the
organization was created, then the person insert was rejected), since those
writes are visible in the store.
"""

__all__ = [
    "summarize",
    "render_summary_line",
]


def summarize(outcomes: Iterable[ImportOutcome]) -> ImportSummary:
    counts = {
        (EntityType.PERSON, ImportAction.CREATED): 0,
        (EntityType.PERSON, ImportAction.UPDATED): 0,
        (EntityType.ORGANIZATION, ImportAction.CREATED): 0,
        (EntityType.ORGANIZATION, ImportAction.UPDATED): 0,
    }
    failures: list[RowFailure] = []
    for outcome in outcomes:
        for entity in outcome.entities:
            counts[(entity.entity_type, entity.action)] += 1
        if outcome.error is not None:
            failures.append(RowFailure(row_index=outcome.row_index, label=outcome.label, message=outcome.error))
    return ImportSummary(
        people_created=counts[(EntityType.PERSON, ImportAction.CREATED)],
        people_updated=counts[(EntityType.PERSON, ImportAction.UPDATED)],
        organizations_created=counts[(EntityType.ORGANIZATION, ImportAction.CREATED)],
        organizations_updated=counts[(EntityType.ORGANIZATION, ImportAction.UPDATED)],
        failures=tuple(failures),
    )


def _format_seconds(seconds: float) -> str:
    # 整数は小数点なし / 極小値は指数表記を避ける
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.2f}".rstrip("0").rstrip(".")


def render_summary_line(summary: ImportSummary, processed: int, total_selected: int, elapsed_seconds: float) -> str:
    """Render the single SUMMARY line printed at the end of a commit.

    Examples:
        >>> s = ImportSummary(people_created=2, organizations_created=1)
        >>> render_summary_line(s, 2, 2, 1.5)
        'SUMMARY rows=2/2 people_created=2 people_updated=0 orgs_created=1 orgs_updated=0 failed=0 elapsed_sec=1.5'
    """
    return (
        f"SUMMARY rows={processed}/{total_selected} "
        f"people_created={summary.people_created} "
        f"people_updated={summary.people_updated} "
        f"orgs_created={summary.organizations_created} "
        f"orgs_updated={summary.organizations_updated} "
        f"failed={summary.failed} "
        f"elapsed_sec={_format_seconds(elapsed_seconds)}"
    )
