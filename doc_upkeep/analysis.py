"""
Whole-document comparison statistics.

Produces the Analysis record the strategy selector works from: word-set
similarity, per-section conflicts, section-level changes and structural
changes, plus line-level change counts for reports.
"""

import difflib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from doc_upkeep.conflicts import Conflict, classify_all
from doc_upkeep.metadata import extract_metadata
from doc_upkeep.sections import ParsedDocument, parse_sections, word_set
from doc_upkeep.thresholds import DEFAULT_THRESHOLDS, MergeThresholds

ADDITION = "addition"
MODIFICATION = "modification"
REMOVAL = "removal"


@dataclass(frozen=True)
class SectionChange:
    type: str
    section: str


@dataclass(frozen=True)
class StructuralChange:
    type: str                      # "section_reordering" | "heading_level_change"
    section: Optional[str] = None
    detail: str = ""


@dataclass
class ChangeStats:
    lines_added: int = 0
    lines_deleted: int = 0
    lines_changed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "linesAdded": self.lines_added,
            "linesDeleted": self.lines_deleted,
            "linesChanged": self.lines_changed,
        }


@dataclass
class Analysis:
    """Aggregate comparison of an existing document and a candidate."""

    similarity_percentage: int
    existing: ParsedDocument
    candidate: ParsedDocument
    conflicts: List[Conflict] = field(default_factory=list)
    changes: List[SectionChange] = field(default_factory=list)
    structural_changes: List[StructuralChange] = field(default_factory=list)
    existing_metadata: Dict[str, str] = field(default_factory=dict)
    candidate_metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    @property
    def addition_count(self) -> int:
        return sum(1 for c in self.changes if c.type == ADDITION)

    @property
    def modification_count(self) -> int:
        return sum(1 for c in self.changes if c.type == MODIFICATION)

    def conflict_for(self, key: str) -> Optional[Conflict]:
        for conflict in self.conflicts:
            if conflict.key == key:
                return conflict
        return None

    def summary(self) -> Dict[str, Any]:
        return {
            "similarityPercentage": self.similarity_percentage,
            "conflictCount": self.conflict_count,
            "additions": self.addition_count,
            "modifications": self.modification_count,
            "structuralChanges": len(self.structural_changes),
        }


def similarity(text_a: str, text_b: str) -> float:
    """Jaccard index of the lower-cased word sets, 0.0 - 1.0."""
    words_a = word_set(text_a)
    words_b = word_set(text_b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def identify_changes(existing: ParsedDocument, candidate: ParsedDocument) -> List[SectionChange]:
    """Additions, modifications and removals keyed by section."""
    changes = []
    for section in candidate:
        if section.key not in existing:
            changes.append(SectionChange(ADDITION, section.key))
    for section in existing:
        other = candidate.get(section.key)
        if other is None:
            changes.append(SectionChange(REMOVAL, section.key))
        elif other.text.rstrip() != section.text.rstrip():
            changes.append(SectionChange(MODIFICATION, section.key))
    return changes


def detect_structural_changes(existing: ParsedDocument, candidate: ParsedDocument) -> List[StructuralChange]:
    """Reordering of shared sections and heading-level changes."""
    changes = []
    shared_existing = [k for k in existing.keys if k in candidate]
    shared_candidate = [k for k in candidate.keys if k in existing]
    if shared_existing != shared_candidate:
        changes.append(StructuralChange(
            type="section_reordering",
            detail=f"{shared_existing} -> {shared_candidate}",
        ))
    for key in shared_existing:
        old_level = existing.get(key).level
        new_level = candidate.get(key).level
        if old_level != new_level:
            changes.append(StructuralChange(
                type="heading_level_change",
                section=key,
                detail=f"h{old_level} -> h{new_level}",
            ))
    return changes


def line_change_stats(old_content: str, new_content: str) -> ChangeStats:
    """Count added, deleted and changed lines between two texts."""
    stats = ChangeStats()
    old_lines = old_content.split("\n") if old_content else []
    new_lines = new_content.split("\n") if new_content else []
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "insert":
            stats.lines_added += j2 - j1
        elif tag == "delete":
            stats.lines_deleted += i2 - i1
        elif tag == "replace":
            old_n, new_n = i2 - i1, j2 - j1
            stats.lines_changed += min(old_n, new_n)
            if new_n > old_n:
                stats.lines_added += new_n - old_n
            else:
                stats.lines_deleted += old_n - new_n
    return stats


def analyze(
    existing_content: str,
    candidate_content: str,
    thresholds: Optional[MergeThresholds] = None,
    skip_fenced: bool = True,
) -> Analysis:
    """Compare two versions of a document."""
    thresholds = thresholds or DEFAULT_THRESHOLDS
    existing = parse_sections(existing_content, skip_fenced=skip_fenced)
    candidate = parse_sections(candidate_content, skip_fenced=skip_fenced)

    return Analysis(
        similarity_percentage=round(similarity(existing_content, candidate_content) * 100),
        existing=existing,
        candidate=candidate,
        conflicts=classify_all(existing, candidate, thresholds),
        changes=identify_changes(existing, candidate),
        structural_changes=detect_structural_changes(existing, candidate),
        existing_metadata=extract_metadata(existing_content),
        candidate_metadata=extract_metadata(candidate_content),
    )
