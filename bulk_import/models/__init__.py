"""Domain models for the contacts / companies bulk import.

Rows flow parser -> mapping -> validation -> preview -> commit; each stage has
its own immutable model here.
"""

from .commit_result import CommitResult, ImportSummary, PreviewCounts, RowFailure
from .error_record import ErrorRecord
from .fields import ALL_IMPORT_FIELDS, FIELDS_BY_ID, FieldGroup, ImportField
from .import_row import ImportRow, RowStatus
from .outcome import CommitProgress, EntityOutcome, EntityType, ImportAction, ImportOutcome
from .source_row import SourceRow

__all__ = [
    # Catalog
    "ALL_IMPORT_FIELDS",
    "FIELDS_BY_ID",
    "FieldGroup",
    "ImportField",
    # Rows
    "SourceRow",
    "ImportRow",
    "RowStatus",
    # Commit
    "CommitProgress",
    "EntityOutcome",
    "EntityType",
    "ImportAction",
    "ImportOutcome",
    "CommitResult",
    "ImportSummary",
    "PreviewCounts",
    "RowFailure",
    "ErrorRecord",
]
