"""Services - record expansion and run orchestration."""
from lever_export.services.expander import (
    ExpansionResult,
    RecordExpander,
    SubFetchFailure,
)
from lever_export.services.orchestrator import (
    ExtractionError,
    ExtractionResult,
    FetchOrchestrator,
)
from lever_export.services.progress import (
    LoggingProgressReporter,
    Progress,
    ProgressSnapshot,
)

__all__ = [
    "ExpansionResult",
    "ExtractionError",
    "ExtractionResult",
    "FetchOrchestrator",
    "LoggingProgressReporter",
    "Progress",
    "ProgressSnapshot",
    "RecordExpander",
    "SubFetchFailure",
]
