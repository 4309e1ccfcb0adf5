"""
Strategy selection and resolvers.

A strategy decides how a whole document is reconciled; resolvers realise
that decision section by section. Both are looked up in tables so each
resolver can be exercised on its own:

    STRATEGY_RESOLVERS[Strategy.MERGE](ctx)             -> MergeOutcome
    CONFLICT_RESOLVERS[ConflictType.CODE_CHANGES](...)  -> Resolution
    CONFLICT_HANDLERS["preserve_original"](...)         -> Resolution
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from doc_upkeep.analysis import Analysis
from doc_upkeep.conflicts import Conflict, ConflictType, Severity, classify
from doc_upkeep.markers import has_any_marker, has_manual_edit, wrap_conflict, wrap_generated
from doc_upkeep.metadata import bold_metadata_lines, carry_metadata, parse_frontmatter
from doc_upkeep.sections import Section, extract_code_blocks, join_blocks
from doc_upkeep.thresholds import DEFAULT_THRESHOLDS, MergeThresholds

logger = logging.getLogger(__name__)

HUMAN_TITLE_RE = re.compile(
    r"\b(custom|notes?|internal|manual|our|team|local|faq|gotchas?|known issues|decisions?)\b",
    re.IGNORECASE,
)
TABLE_LINE_RE = re.compile(r"^\s*\|")
QUOTE_LINE_RE = re.compile(r"^\s{0,3}>")


class Strategy(str, Enum):
    APPEND = "append"
    MERGE = "merge"
    REPLACE = "replace"
    VERSION = "version"
    SMART = "smart"


AUTO = "auto"

# Section outcomes reported back to callers
PRESERVED = "preserved"
UPDATED = "updated"
ADDED = "added"
CONFLICTED = "conflicted"
REMOVED = "removed"
UNCHANGED = "unchanged"


@dataclass
class Resolution:
    """Applied outcome for one section."""

    key: str
    text: str
    strategy: str
    outcome: str
    log: str = ""


@dataclass
class MergeContext:
    """Everything a strategy resolver needs for one document."""

    analysis: Analysis
    existing_content: str
    candidate_content: str
    thresholds: MergeThresholds = DEFAULT_THRESHOLDS
    conflict_handling: str = "merge_sections"
    preserve_metadata: bool = True
    version: Optional[int] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass
class MergeOutcome:
    text: str
    strategy: Strategy
    resolutions: List[Resolution] = field(default_factory=list)

    def keys_with(self, outcome: str) -> List[str]:
        return [r.key for r in self.resolutions if r.outcome == outcome]


# ---- selection -------------------------------------------------------------

def select_strategy(analysis: Analysis, thresholds: Optional[MergeThresholds] = None) -> Strategy:
    """Pick the whole-document strategy from aggregate statistics."""
    thresholds = thresholds or DEFAULT_THRESHOLDS

    if analysis.similarity_percentage >= thresholds.merge_similarity:
        return Strategy.MERGE
    if analysis.conflict_count > thresholds.version_conflicts:
        return Strategy.VERSION
    if len(analysis.structural_changes) > thresholds.replace_structural:
        return Strategy.REPLACE
    if analysis.addition_count > analysis.modification_count:
        return Strategy.APPEND
    return Strategy.MERGE


# ---- helpers ---------------------------------------------------------------

def _trailing_newlines(text: str) -> str:
    return text[len(text.rstrip("\n")):]


def _with_spacing(text: str, like: str) -> str:
    """Give ``text`` the same trailing newlines as ``like``."""
    return text.rstrip("\n") + _trailing_newlines(like)


def _insert_after_heading(section: Section, line: str) -> str:
    if section.is_preamble:
        return line + "\n" + section.text
    return section.heading_line + "\n" + line + "\n" + section.body


def _blocks(text: str, line_re: re.Pattern) -> List[str]:
    """Contiguous runs of lines matching ``line_re``."""
    blocks, current = [], []
    for line in text.split("\n"):
        if line_re.match(line):
            current.append(line)
        elif current:
            blocks.append("\n".join(current))
            current = []
    if current:
        blocks.append("\n".join(current))
    return blocks


def looks_human_authored(section: Section) -> bool:
    """Markers, metadata or a title that people, not generators, tend to write."""
    if has_any_marker(section.text):
        return True
    if section.is_preamble:
        frontmatter, _ = parse_frontmatter(section.text)
        return frontmatter is not None or bool(bold_metadata_lines(section.text))
    return bool(HUMAN_TITLE_RE.search(section.key))


def _resolution(key, text, strategy, outcome, log) -> Resolution:
    logger.debug("[%s] %s: %s", strategy, key, log)
    return Resolution(key=key, text=text, strategy=str(strategy), outcome=outcome, log=log)


# ---- conflict resolvers ----------------------------------------------------

def resolve_manual_edits(existing: Section, candidate: Section, conflict: Conflict, ctx: MergeContext) -> Resolution:
    return _resolution(existing.key, existing.text, "manual_edits", PRESERVED,
                       "kept manually edited section verbatim")


def resolve_significant_changes(existing: Section, candidate: Section, conflict: Conflict, ctx: MergeContext) -> Resolution:
    if conflict.severity is Severity.HIGH:
        return _conflict_markers(existing, candidate, "significant_changes")

    ratio = getattr(conflict, "word_delta_ratio", 0.0)
    note = f"<!-- UPDATED: {ctx.timestamp} (previous text differed by {ratio:.0%}) -->"
    return _resolution(candidate.key, _insert_after_heading(candidate, note), "significant_changes", UPDATED,
                       f"took new text, previous differed by {ratio:.0%}")


def resolve_custom_formatting(existing: Section, candidate: Section, conflict: Conflict, ctx: MergeContext) -> Resolution:
    kept = [
        block for block in _blocks(existing.body, TABLE_LINE_RE) + _blocks(existing.body, QUOTE_LINE_RE)
        if block not in candidate.text
    ]
    if not kept:
        return _resolution(candidate.key, candidate.text, "custom_formatting", UPDATED,
                           "took new text, formatting already present")
    text = join_blocks([candidate.text.rstrip("\n")] + kept)
    return _resolution(candidate.key, _with_spacing(text, candidate.text), "custom_formatting", UPDATED,
                       f"took new text, retained {len(kept)} formatted block(s)")


def resolve_code_changes(existing: Section, candidate: Section, conflict: Conflict, ctx: MergeContext) -> Resolution:
    missing = [block for block in extract_code_blocks(existing.text) if block not in candidate.text]
    if not missing:
        return _resolution(candidate.key, candidate.text, "code_changes", UPDATED, "took new text")
    preserved = ["<!-- PRESERVED_CODE_BLOCK -->\n" + block for block in missing]
    text = join_blocks([candidate.text.rstrip("\n")] + preserved)
    return _resolution(candidate.key, _with_spacing(text, candidate.text), "code_changes", UPDATED,
                       f"took new text, preserved {len(missing)} code block(s)")


def _conflict_markers(existing: Section, candidate: Section, strategy: str) -> Resolution:
    heading = candidate.heading_line or existing.heading_line
    block = wrap_conflict(candidate.key, existing.body, candidate.body)
    text = (heading + "\n" + block) if heading else block
    return _resolution(candidate.key, _with_spacing(text + "\n", candidate.text), strategy, CONFLICTED,
                       "embedded both versions for manual resolution")


def _take_candidate(existing: Section, candidate: Section, conflict: Conflict, ctx: MergeContext) -> Resolution:
    return _resolution(candidate.key, candidate.text, "none", UPDATED, "replaced with new text")


CONFLICT_RESOLVERS: Dict[ConflictType, Callable[..., Resolution]] = {
    ConflictType.MANUAL_EDITS: resolve_manual_edits,
    ConflictType.SIGNIFICANT_CHANGES: resolve_significant_changes,
    ConflictType.CUSTOM_FORMATTING: resolve_custom_formatting,
    ConflictType.CODE_CHANGES: resolve_code_changes,
    ConflictType.NONE: _take_candidate,
}


# ---- conflict handling policies -------------------------------------------

def handle_merge_sections(existing, candidate, conflict, ctx) -> Resolution:
    return CONFLICT_RESOLVERS[conflict.type](existing, candidate, conflict, ctx)


def handle_preserve_original(existing, candidate, conflict, ctx) -> Resolution:
    return _resolution(existing.key, existing.text, "preserve_original", PRESERVED,
                       f"kept existing text ({conflict.type.value})")


def handle_prefer_new(existing, candidate, conflict, ctx) -> Resolution:
    if conflict.type is ConflictType.MANUAL_EDITS:
        return resolve_manual_edits(existing, candidate, conflict, ctx)
    return _resolution(candidate.key, candidate.text, "prefer_new", UPDATED,
                       f"took new text despite {conflict.type.value}")


def handle_conflict_markers(existing, candidate, conflict, ctx) -> Resolution:
    if conflict.type is ConflictType.MANUAL_EDITS:
        return resolve_manual_edits(existing, candidate, conflict, ctx)
    return _conflict_markers(existing, candidate, "create_conflict_markers")


CONFLICT_HANDLERS: Dict[str, Callable[..., Resolution]] = {
    "merge_sections": handle_merge_sections,
    "preserve_original": handle_preserve_original,
    "prefer_new": handle_prefer_new,
    "create_conflict_markers": handle_conflict_markers,
}


def _conflict_for(ctx: MergeContext, existing: Section, candidate: Section) -> Conflict:
    return ctx.analysis.conflict_for(existing.key) or classify(existing, candidate, ctx.thresholds)


# ---- strategy resolvers ----------------------------------------------------

def _new_sections(ctx: MergeContext) -> List[Section]:
    existing = ctx.analysis.existing
    return [s for s in ctx.analysis.candidate if s.key not in existing and not s.is_blank()]


def _append_block(text: str, sections: List[Section], timestamp: str) -> str:
    separator = f"---\n\n## Update {timestamp}\n"
    body = "\n".join(s.text.rstrip("\n") + "\n" for s in sections)
    return join_blocks([text.rstrip("\n") + "\n", separator, body])


def append_strategy(ctx: MergeContext) -> MergeOutcome:
    """Add sections whose key is new; leave everything else untouched."""
    new_sections = _new_sections(ctx)
    if not new_sections:
        logger.info("No new sections to append")
        return MergeOutcome(ctx.existing_content, Strategy.APPEND)

    resolutions = [
        _resolution(s.key, s.text, Strategy.APPEND.value, ADDED, "appended new section")
        for s in new_sections
    ]
    text = _append_block(ctx.existing_content, new_sections, ctx.timestamp)
    return MergeOutcome(text, Strategy.APPEND, resolutions)


def merge_strategy(ctx: MergeContext) -> MergeOutcome:
    """Section-by-section merge that keeps human-authored sections."""
    existing = ctx.analysis.existing
    candidate = ctx.analysis.candidate
    handler = CONFLICT_HANDLERS.get(ctx.conflict_handling, handle_merge_sections)

    order: List[str] = []
    texts: Dict[str, str] = {}
    resolutions: List[Resolution] = []

    for section in existing:
        if section.key in candidate:
            order.append(section.key)
            continue
        if section.is_blank():
            order.append(section.key)
            texts[section.key] = section.text
        elif section.key in existing.shadowed:
            order.append(section.key)
            texts[section.key] = section.text
            resolutions.append(_resolution(section.key, section.text, Strategy.MERGE.value, PRESERVED,
                                           "kept earlier section with a repeated heading"))
        elif looks_human_authored(section):
            order.append(section.key)
            texts[section.key] = section.text
            resolutions.append(_resolution(section.key, section.text, Strategy.MERGE.value, PRESERVED,
                                           "kept human-authored section missing from new content"))
        else:
            logger.warning("Dropping section %r: not in new content and not human-authored", section.key)
            resolutions.append(_resolution(section.key, "", Strategy.MERGE.value, REMOVED,
                                           "dropped generated section missing from new content"))

    previous_key: Optional[str] = None
    for section in candidate:
        current = existing.get(section.key)
        if current is not None:
            conflict = _conflict_for(ctx, current, section)
            if conflict.is_conflict:
                resolution = handler(current, section, conflict, ctx)
            elif current.text == section.text:
                resolution = _resolution(section.key, current.text, Strategy.MERGE.value, UNCHANGED, "unchanged")
            else:
                resolution = _resolution(section.key, section.text, Strategy.MERGE.value, UPDATED,
                                         "replaced with new text")
            texts[section.key] = resolution.text
            resolutions.append(resolution)
        else:
            if section.is_preamble:
                order.insert(0, section.key)
            elif previous_key is not None and previous_key in order:
                order.insert(order.index(previous_key) + 1, section.key)
            else:
                order.append(section.key)
            texts[section.key] = section.text
            if not section.is_blank():
                resolutions.append(_resolution(section.key, section.text, Strategy.MERGE.value, ADDED,
                                               "added new section"))
        previous_key = section.key

    pieces = [texts[key] for key in order]
    # keep sections separated when a new one lands after a text lacking a newline
    text = "\n".join(
        piece if i == len(pieces) - 1 or piece.endswith("\n") else piece + "\n"
        for i, piece in enumerate(pieces)
    )
    return MergeOutcome(text, Strategy.MERGE, resolutions)


def replace_strategy(ctx: MergeContext) -> MergeOutcome:
    """New content becomes the document; metadata and manual edits carry over."""
    text = ctx.candidate_content
    resolutions: List[Resolution] = []
    candidate = ctx.analysis.candidate

    carried_tail: List[str] = []
    for section in ctx.analysis.existing:
        if not has_manual_edit(section.text):
            continue
        current = candidate.get(section.key)
        if current is not None and current.text and current.text in text:
            text = text.replace(current.text, _with_spacing(section.text, current.text), 1)
        else:
            carried_tail.append(section.text.rstrip("\n") + "\n")
        resolutions.append(_resolution(section.key, section.text, Strategy.REPLACE.value, PRESERVED,
                                       "carried manually edited section into replacement"))

    if carried_tail:
        text = join_blocks([text.rstrip("\n") + "\n"] + carried_tail)

    if ctx.preserve_metadata:
        text = carry_metadata(ctx.existing_content, text)

    for section in candidate:
        if section.key not in {r.key for r in resolutions} and not section.is_blank():
            resolutions.append(_resolution(section.key, section.text, Strategy.REPLACE.value,
                                           ADDED if section.key not in ctx.analysis.existing else UPDATED,
                                           "replaced"))
    return MergeOutcome(text, Strategy.REPLACE, resolutions)


def version_strategy(ctx: MergeContext) -> MergeOutcome:
    """Write the new content as a new version block above the untouched original."""
    analysis = ctx.analysis
    label = "v" + ctx.timestamp.replace(":", "-").replace(".", "-")
    header = "\n".join([
        f"{VERSION_HEADING} {label}",
        "",
        "**Previous Version Preserved:** Yes  ",
        f"**Update Reason:** Significant changes detected ({analysis.conflict_count} conflicts)  ",
        f"**Similarity:** {analysis.similarity_percentage}%  ",
        "",
    ])
    new_block = wrap_generated(
        ctx.candidate_content,
        version=str(ctx.version) if ctx.version is not None else None,
        timestamp=ctx.timestamp,
    )
    text = join_blocks([
        header,
        new_block + "\n",
        "---\n",
        "## Previous Version\n",
        ctx.existing_content,
    ])
    resolutions = [
        _resolution(s.key, s.text, Strategy.VERSION.value, PRESERVED, "kept under previous version")
        for s in analysis.existing if not s.is_blank()
    ]
    return MergeOutcome(text, Strategy.VERSION, resolutions)


VERSION_HEADING = "# Document Version:"
PREVIOUS_VERSION_RE = re.compile(r"^## Previous Version[ \t]*$", re.MULTILINE)
GENERATED_OPEN_RE = re.compile(
    r"<!--\s*AI_GENERATED_START\s*-->\n(?:<!--\s*AI_(?:TIMESTAMP|VERSION)\s*:.*?-->\n)*\n?"
)
GENERATED_CLOSE_RE = re.compile(r"<!--\s*AI_GENERATED_END\s*-->")


@dataclass
class VersionedLayout:
    """A document written by the version strategy, cut around its current block."""

    head: str
    current: str
    tail: str

    def render(self, body: str) -> str:
        return self.head + body.rstrip("\n") + "\n\n" + self.tail


def split_versioned(text: str) -> Optional[VersionedLayout]:
    """
    Locate the current generated block of a versioned document.

    Returns None unless the text starts with a version header and keeps a
    ``## Previous Version`` archive below one complete generated block.
    ``render(layout.current)`` reproduces the input exactly.
    """
    if not text.startswith(VERSION_HEADING):
        return None
    previous = PREVIOUS_VERSION_RE.search(text)
    opening = GENERATED_OPEN_RE.search(text)
    if previous is None or opening is None or opening.start() > previous.start():
        return None
    closes = list(GENERATED_CLOSE_RE.finditer(text, opening.end(), previous.start()))
    if not closes:
        return None
    close = closes[-1]
    current = text[opening.end():close.start()]
    if current.strip() == "" or current[len(current.rstrip("\n")):] != "\n\n":
        return None
    return VersionedLayout(
        head=text[:opening.end()],
        current=current.rstrip("\n") + "\n",
        tail=text[close.start():],
    )


def smart_strategy(ctx: MergeContext) -> MergeOutcome:
    """Append new sections, then resolve each conflict with its own resolver."""
    existing = ctx.analysis.existing
    candidate = ctx.analysis.candidate
    resolutions: List[Resolution] = []
    texts: Dict[str, str] = {s.key: s.text for s in existing}

    for section in candidate:
        current = existing.get(section.key)
        if current is None:
            continue
        conflict = _conflict_for(ctx, current, section)
        resolution = CONFLICT_RESOLVERS[conflict.type](current, section, conflict, ctx)
        if resolution.text == current.text and resolution.outcome == UPDATED:
            resolution.outcome = UNCHANGED
        texts[section.key] = resolution.text
        resolutions.append(resolution)

    text = "\n".join(texts[key] for key in existing.keys)

    new_sections = _new_sections(ctx)
    if new_sections:
        logger.info("Adding %d new sections", len(new_sections))
        text = _append_block(text, new_sections, ctx.timestamp)
        resolutions.extend(
            _resolution(s.key, s.text, Strategy.SMART.value, ADDED, "appended new section")
            for s in new_sections
        )
    return MergeOutcome(text, Strategy.SMART, resolutions)


STRATEGY_RESOLVERS: Dict[Strategy, Callable[[MergeContext], MergeOutcome]] = {
    Strategy.APPEND: append_strategy,
    Strategy.MERGE: merge_strategy,
    Strategy.REPLACE: replace_strategy,
    Strategy.VERSION: version_strategy,
    Strategy.SMART: smart_strategy,
}


def apply_strategy(strategy: Strategy, ctx: MergeContext) -> MergeOutcome:
    return STRATEGY_RESOLVERS[Strategy(strategy)](ctx)
