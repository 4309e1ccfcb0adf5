"""doc-upkeep: merge and version engine for generated project documentation."""

from doc_upkeep.updater import DocumentUpdater, UpdateOptions, UpdateResult, Outcome
from doc_upkeep.registry import DocumentRegistry, DocumentRecord
from doc_upkeep.strategies import Strategy

__version__ = "0.3.0"

__all__ = [
    "DocumentUpdater",
    "UpdateOptions",
    "UpdateResult",
    "Outcome",
    "DocumentRegistry",
    "DocumentRecord",
    "Strategy",
]
