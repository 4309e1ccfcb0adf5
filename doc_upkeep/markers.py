"""
In-band marker protocol.

Documents carry HTML-comment annotations that tell the engine which spans
were generated, which were edited by hand and which must be kept verbatim:

    <!-- MANUAL_EDIT_START -->
    <!-- MANUAL_AUTHOR: jane -->
    <!-- MANUAL_TIMESTAMP: 2026-01-02T10:00:00+00:00 -->
    ...
    <!-- MANUAL_EDIT_END -->

Markers do not nest. A start token pairs with the next end token of the same
family.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Pattern, Tuple


class MarkerFamily(str, Enum):
    GENERATED = "generated"
    MANUAL_EDIT = "manual_edit"
    PRESERVE = "preserve"
    CONFLICT = "conflict"


def _token(name: str, arg: bool = False) -> Pattern:
    if arg:
        return re.compile(r"<!--\s*" + name + r"\s*:\s*(.*?)\s*-->")
    return re.compile(r"<!--\s*" + name + r"\s*-->")


# (start, end) token patterns per family
TOKENS: Dict[MarkerFamily, Tuple[Pattern, Pattern]] = {
    MarkerFamily.GENERATED: (_token("AI_GENERATED_START"), _token("AI_GENERATED_END")),
    MarkerFamily.MANUAL_EDIT: (_token("MANUAL_EDIT_START"), _token("MANUAL_EDIT_END")),
    MarkerFamily.PRESERVE: (_token("PRESERVE_START"), _token("PRESERVE_END")),
    MarkerFamily.CONFLICT: (_token("CONFLICT_START", arg=True), _token("CONFLICT_END")),
}

SUB_MARKERS: Dict[str, Pattern] = {
    "timestamp": re.compile(r"<!--\s*(?:AI|MANUAL)_TIMESTAMP\s*:\s*(.*?)\s*-->"),
    "version": _token("AI_VERSION", arg=True),
    "author": _token("MANUAL_AUTHOR", arg=True),
    "label": _token("PRESERVE_LABEL", arg=True),
}

# Older documents toggle manual sections with a single repeated token.
LEGACY_MANUAL_TOGGLE = re.compile(r"<!--\s*manual-edit\s*-->")

CONFLICT_EXISTING = "<!-- CONFLICT_EXISTING -->"
CONFLICT_CANDIDATE = "<!-- CONFLICT_CANDIDATE -->"

ANY_MARKER = re.compile(
    r"<!--\s*(?:AI_GENERATED|AI_TIMESTAMP|AI_VERSION|MANUAL_EDIT|MANUAL_TIMESTAMP|"
    r"MANUAL_AUTHOR|PRESERVE|CONFLICT|UPDATED|PRESERVED_CODE_BLOCK|manual-edit)[^>]*-->"
)


@dataclass(frozen=True)
class Marker:
    """A matched start/end marker pair."""

    family: MarkerFamily
    start: int
    end: int
    body: str
    timestamp: Optional[str] = None
    version: Optional[str] = None
    author: Optional[str] = None
    label: Optional[str] = None

    @property
    def text(self) -> str:
        """Body without the sub-marker comment lines."""
        lines = self.body.split("\n")
        while lines and (not lines[0].strip() or _is_sub_marker(lines[0])):
            lines.pop(0)
        return "\n".join(lines).strip()


@dataclass
class MarkerValidation:
    valid: bool
    issues: List[str] = field(default_factory=list)
    counts: Dict[str, Tuple[int, int]] = field(default_factory=dict)


def _is_sub_marker(line: str) -> bool:
    return any(p.fullmatch(line.strip()) for p in SUB_MARKERS.values())


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---- detection -------------------------------------------------------------

def has_manual_edit(section_text: str) -> bool:
    """True when the text carries a manual-edit or preserve annotation."""
    start, end = TOKENS[MarkerFamily.MANUAL_EDIT]
    if start.search(section_text) or end.search(section_text):
        return True
    if LEGACY_MANUAL_TOGGLE.search(section_text):
        return True
    return bool(TOKENS[MarkerFamily.PRESERVE][0].search(section_text))


def has_any_marker(text: str) -> bool:
    return bool(ANY_MARKER.search(text))


def strip_markers(text: str) -> str:
    """Remove marker comments, e.g. before comparing prose."""
    return ANY_MARKER.sub("", text)


def _read_sub_markers(body: str) -> Dict[str, str]:
    found: Dict[str, str] = {}
    for line in body.split("\n"):
        stripped = line.strip()
        if not stripped:
            continue
        matched = False
        for name, pattern in SUB_MARKERS.items():
            m = pattern.fullmatch(stripped)
            if m:
                found.setdefault(name, m.group(1))
                matched = True
                break
        if not matched:
            break
    return found


def extract_markers(document_text: str) -> List[Marker]:
    """
    Find every complete marker pair in a document.

    Unpaired start or end tokens are skipped here; ``validate_markers``
    reports them.

    Returns:
        Markers ordered by start offset
    """
    markers: List[Marker] = []
    for family, (start_re, end_re) in TOKENS.items():
        pos = 0
        while True:
            start = start_re.search(document_text, pos)
            if not start:
                break
            end = end_re.search(document_text, start.end())
            if not end:
                break
            # a second start before the end means the first one is unpaired
            next_start = start_re.search(document_text, start.end(), end.start())
            if next_start:
                pos = next_start.start()
                continue
            body = document_text[start.end():end.start()]
            subs = _read_sub_markers(body)
            label = subs.get("label")
            if family is MarkerFamily.CONFLICT and start.groups():
                label = start.group(1)
            markers.append(Marker(
                family=family,
                start=start.start(),
                end=end.end(),
                body=body,
                timestamp=subs.get("timestamp"),
                version=subs.get("version"),
                author=subs.get("author"),
                label=label,
            ))
            pos = end.end()
    markers.sort(key=lambda m: m.start)
    return markers


def validate_markers(document_text: str) -> MarkerValidation:
    """
    Count start and end tokens per family and report mismatches.

    Mismatches are returned as issues rather than raised; callers decide
    whether an imbalance should stop a write.
    """
    issues: List[str] = []
    counts: Dict[str, Tuple[int, int]] = {}
    for family, (start_re, end_re) in TOKENS.items():
        starts = len(start_re.findall(document_text))
        ends = len(end_re.findall(document_text))
        counts[family.value] = (starts, ends)
        if starts != ends:
            issues.append(f"Unmatched {family.value} markers: {starts} starts, {ends} ends")

    toggles = len(LEGACY_MANUAL_TOGGLE.findall(document_text))
    if toggles % 2:
        issues.append(f"Unmatched manual-edit toggles: {toggles} found")

    return MarkerValidation(valid=not issues, issues=issues, counts=counts)


def extract_protected_blocks(text: str) -> List[str]:
    """Full text of every manual-edit and preserve block, markers included."""
    return [
        text[m.start:m.end]
        for m in extract_markers(text)
        if m.family in (MarkerFamily.MANUAL_EDIT, MarkerFamily.PRESERVE)
    ]


# ---- emitters --------------------------------------------------------------

def wrap_generated(content: str, version: Optional[str] = None, timestamp: Optional[str] = None) -> str:
    """Wrap generated content in AI_GENERATED markers."""
    lines = ["<!-- AI_GENERATED_START -->", f"<!-- AI_TIMESTAMP: {timestamp or _now()} -->"]
    if version is not None:
        lines.append(f"<!-- AI_VERSION: {version} -->")
    lines += ["", content.strip(), "", "<!-- AI_GENERATED_END -->"]
    return "\n".join(lines)


def wrap_manual_edit(content: str, author: str = "user", timestamp: Optional[str] = None) -> str:
    """Mark content as hand-edited so merges keep it verbatim."""
    return "\n".join([
        "<!-- MANUAL_EDIT_START -->",
        f"<!-- MANUAL_AUTHOR: {author} -->",
        f"<!-- MANUAL_TIMESTAMP: {timestamp or _now()} -->",
        "",
        content.strip(),
        "",
        "<!-- MANUAL_EDIT_END -->",
    ])


def wrap_preserve(content: str, label: str = "") -> str:
    lines = ["<!-- PRESERVE_START -->"]
    if label:
        lines.append(f"<!-- PRESERVE_LABEL: {label} -->")
    lines += [content.strip(), "<!-- PRESERVE_END -->"]
    return "\n".join(lines)


def wrap_conflict(key: str, existing: str, candidate: str) -> str:
    """Embed both versions of a section for a human to resolve."""
    safe_key = key.replace("--", "- -")
    return "\n".join([
        f"<!-- CONFLICT_START: {safe_key} -->",
        CONFLICT_EXISTING,
        existing.rstrip("\n"),
        CONFLICT_CANDIDATE,
        candidate.rstrip("\n"),
        "<!-- CONFLICT_END -->",
    ])
