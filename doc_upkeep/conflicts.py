"""
Conflict classification between an existing section and its replacement.

Checks run in a fixed order. The first check that fires decides the kind of
conflict; later checks still run and add evidence, except for manual edits,
which short-circuit everything else.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

from doc_upkeep.markers import has_manual_edit
from doc_upkeep.sections import (
    ParsedDocument,
    Section,
    extract_code_blocks,
    strip_code_blocks,
    word_count,
)
from doc_upkeep.thresholds import DEFAULT_THRESHOLDS, MergeThresholds

TABLE_SEPARATOR_RE = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)+\|?\s*$", re.M)
BLOCKQUOTE_RE = re.compile(r"^\s{0,3}>", re.M)
INLINE_HTML_RE = re.compile(r"</?[a-zA-Z][a-zA-Z0-9-]*(\s[^<>]*)?/?>")
LIST_ITEM_RE = re.compile(r"^(\s*)(?:[-*+]|\d+[.)])\s+", re.M)


class ConflictType(str, Enum):
    MANUAL_EDITS = "manual_edits"
    SIGNIFICANT_CHANGES = "significant_changes"
    CUSTOM_FORMATTING = "custom_formatting"
    CODE_CHANGES = "code_changes"
    NONE = "none"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return ("low", "medium", "high").index(self.value)


def max_severity(*levels: Severity) -> Severity:
    return max(levels, key=lambda s: s.rank)


@dataclass
class Conflict:
    """Disagreement between an existing section and a candidate section."""

    type: ClassVar[ConflictType] = ConflictType.NONE

    key: str
    severity: Severity = Severity.LOW
    reasons: List[str] = field(default_factory=list)

    @property
    def is_conflict(self) -> bool:
        return self.type is not ConflictType.NONE

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "section": self.key,
            "type": self.type.value,
            "severity": self.severity.value,
            "reasons": list(self.reasons),
        }
        data.update(self.details())
        return data


@dataclass
class NoConflict(Conflict):
    type: ClassVar[ConflictType] = ConflictType.NONE


@dataclass
class ManualEditConflict(Conflict):
    type: ClassVar[ConflictType] = ConflictType.MANUAL_EDITS


@dataclass
class SignificantChangeConflict(Conflict):
    type: ClassVar[ConflictType] = ConflictType.SIGNIFICANT_CHANGES

    word_delta_ratio: float = 0.0

    def details(self) -> Dict[str, Any]:
        return {"word_delta_ratio": round(self.word_delta_ratio, 3)}


@dataclass
class CustomFormattingConflict(Conflict):
    type: ClassVar[ConflictType] = ConflictType.CUSTOM_FORMATTING

    constructs: List[str] = field(default_factory=list)

    def details(self) -> Dict[str, Any]:
        return {"constructs": list(self.constructs)}


@dataclass
class CodeChangeConflict(Conflict):
    type: ClassVar[ConflictType] = ConflictType.CODE_CHANGES

    existing_blocks: int = 0
    candidate_blocks: int = 0

    def details(self) -> Dict[str, Any]:
        return {"existing_blocks": self.existing_blocks, "candidate_blocks": self.candidate_blocks}


# ---- individual checks -----------------------------------------------------

def word_delta_ratio(existing_text: str, candidate_text: str) -> float:
    """|words_existing - words_candidate| / words_existing."""
    existing_words = word_count(existing_text)
    candidate_words = word_count(candidate_text)
    if existing_words == 0:
        return 1.0 if candidate_words else 0.0
    return abs(existing_words - candidate_words) / existing_words


def _list_depth(text: str) -> int:
    depth = 0
    for match in LIST_ITEM_RE.finditer(text):
        indent = len(match.group(1).replace("\t", "    "))
        depth = max(depth, indent // 2 + 1)
    return depth


def detect_custom_formatting(text: str, nested_depth: int = 3) -> List[str]:
    """Names of hand-made formatting constructs present in the text."""
    prose = strip_code_blocks(text)
    constructs = []
    if TABLE_SEPARATOR_RE.search(prose):
        constructs.append("table")
    if BLOCKQUOTE_RE.search(prose):
        constructs.append("blockquote")
    if INLINE_HTML_RE.search(prose):
        constructs.append("inline_html")
    if _list_depth(prose) >= nested_depth:
        constructs.append("nested_list")
    return constructs


def _same_text(a: str, b: str) -> bool:
    return a.rstrip() == b.rstrip()


# ---- classifier ------------------------------------------------------------

def classify(
    existing: Section,
    candidate: Section,
    thresholds: Optional[MergeThresholds] = None,
) -> Conflict:
    """
    Compare an existing section against its proposed replacement.

    Args:
        existing: Section currently on disk
        candidate: Section with the same key from the new content
        thresholds: Heuristic constants (defaults when omitted)

    Returns:
        One of the Conflict variants; ``NoConflict`` when the candidate may
        replace the existing text freely
    """
    thresholds = thresholds or DEFAULT_THRESHOLDS
    key = existing.key

    if _same_text(existing.text, candidate.text):
        return NoConflict(key=key, reasons=["identical content"])

    if has_manual_edit(existing.text):
        return ManualEditConflict(
            key=key,
            severity=Severity.HIGH,
            reasons=["existing section carries a manual-edit marker"],
        )

    verdict: Optional[Conflict] = None
    severities: List[Severity] = []
    reasons: List[str] = []

    ratio = word_delta_ratio(existing.body, candidate.body)
    if ratio > thresholds.medium_word_ratio:
        severity = Severity.HIGH if ratio > thresholds.high_word_ratio else Severity.MEDIUM
        severities.append(severity)
        reasons.append(f"word count changed by {ratio:.0%}")
        verdict = SignificantChangeConflict(key=key, word_delta_ratio=ratio)

    constructs = detect_custom_formatting(existing.text, thresholds.nested_list_depth)
    if constructs:
        severities.append(Severity.MEDIUM)
        reasons.append("custom formatting: " + ", ".join(constructs))
        if verdict is None:
            verdict = CustomFormattingConflict(key=key, constructs=constructs)

    existing_blocks = len(extract_code_blocks(existing.text))
    candidate_blocks = len(extract_code_blocks(candidate.text))
    if existing_blocks != candidate_blocks:
        severities.append(Severity.MEDIUM)
        reasons.append(f"code blocks changed from {existing_blocks} to {candidate_blocks}")
        if verdict is None:
            verdict = CodeChangeConflict(
                key=key,
                existing_blocks=existing_blocks,
                candidate_blocks=candidate_blocks,
            )

    if verdict is None:
        return NoConflict(key=key)

    verdict.severity = max_severity(*severities)
    verdict.reasons = reasons
    return verdict


def classify_all(
    existing: ParsedDocument,
    candidate: ParsedDocument,
    thresholds: Optional[MergeThresholds] = None,
) -> List[Conflict]:
    """Conflicts for every key present in both documents, in candidate order."""
    conflicts = []
    for section in candidate:
        current = existing.get(section.key)
        if current is None:
            continue
        verdict = classify(current, section, thresholds)
        if verdict.is_conflict:
            conflicts.append(verdict)
    return conflicts
