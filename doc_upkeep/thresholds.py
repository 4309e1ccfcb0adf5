"""
Merge heuristics and per-corpus tuning.

Single source of truth for the numeric thresholds used by conflict
classification and strategy selection. The defaults suit generated prose
documents; some document types churn differently (changelogs mostly grow,
meeting notes get rewritten wholesale), so an override table adjusts the
defaults per document type.
"""

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class MergeThresholds:
    """Heuristic constants for one document type."""

    merge_similarity: int = 85          # similarity % at or above which merge is chosen
    version_conflicts: int = 5          # more conflicts than this → version strategy
    replace_structural: int = 3         # more structural changes than this → replace
    medium_word_ratio: float = 0.3      # word-count delta ratio for a medium conflict
    high_word_ratio: float = 0.6        # word-count delta ratio for a high conflict
    nested_list_depth: int = 3          # list depth counted as custom formatting

    def __str__(self) -> str:
        return (
            f"merge>={self.merge_similarity}% "
            f"conflicts>{self.version_conflicts} "
            f"structural>{self.replace_structural} "
            f"ratios={self.medium_word_ratio}/{self.high_word_ratio}"
        )


DEFAULT_THRESHOLDS = MergeThresholds()

# ──────────────────────────────────────────────────────────────────────
# Override table for document types whose edit patterns differ from the
# default. Keys are the doc types produced by ``infer_doc_type``.
# ──────────────────────────────────────────────────────────────────────

THRESHOLD_OVERRIDES: dict[str, MergeThresholds] = {
    # Changelogs grow by appending entries; large deltas are expected
    "changelog": replace(DEFAULT_THRESHOLDS, medium_word_ratio=0.5, high_word_ratio=0.9),
    # Meeting notes are rewritten per meeting; prefer versioning earlier
    "meeting-notes": replace(DEFAULT_THRESHOLDS, version_conflicts=3),
    # Briefs and summaries are short, so a few words is already a big ratio
    "summary": replace(DEFAULT_THRESHOLDS, medium_word_ratio=0.4, high_word_ratio=0.75),
}


def resolve_thresholds(doc_type: str = "") -> MergeThresholds:
    """Resolve thresholds for a document type, falling back to defaults."""
    return THRESHOLD_OVERRIDES.get(doc_type, DEFAULT_THRESHOLDS)
