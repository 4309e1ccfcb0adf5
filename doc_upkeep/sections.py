"""
Section model for markdown documents.

A document is split into sections at heading lines. Every heading level is
an equal-priority boundary; the level is kept only as metadata. Text before
the first heading becomes a synthetic preamble section.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional

PREAMBLE_KEY = "__preamble__"

HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)(?:[ \t]+#+)?[ \t]*$")
FENCE_RE = re.compile(r"^[ ]{0,3}(`{3,}|~{3,})")
WORD_RE = re.compile(r"\w+")


@dataclass(frozen=True)
class Section:
    """A heading plus its body, the unit of merge comparison."""

    key: str
    level: int
    text: str

    @property
    def is_preamble(self) -> bool:
        return self.key == PREAMBLE_KEY

    @property
    def heading_line(self) -> str:
        """The heading line itself, empty for the preamble."""
        if self.is_preamble:
            return ""
        return self.text.split("\n", 1)[0]

    @property
    def body(self) -> str:
        """Section text without its heading line."""
        if self.is_preamble:
            return self.text
        parts = self.text.split("\n", 1)
        return parts[1] if len(parts) > 1 else ""

    def is_blank(self) -> bool:
        return not self.text.strip()


@dataclass
class ParsedDocument:
    """Ordered section map produced by a single parse pass."""

    sections: Dict[str, Section] = field(default_factory=dict)
    duplicates: List[str] = field(default_factory=list)
    shadowed: List[str] = field(default_factory=list)   # keys given to overwritten sections

    def __contains__(self, key: str) -> bool:
        return key in self.sections

    def __iter__(self) -> Iterator[Section]:
        return iter(self.sections.values())

    def __len__(self) -> int:
        return len(self.sections)

    def get(self, key: str) -> Optional[Section]:
        return self.sections.get(key)

    @property
    def keys(self) -> List[str]:
        return list(self.sections.keys())

    @property
    def headings(self) -> List[Section]:
        """All sections except the preamble."""
        return [s for s in self.sections.values() if not s.is_preamble]


def shadow_key_for(key: str, occurrence: int) -> str:
    return f"{key} [shadowed {occurrence}]"


def _heading(line: str) -> Optional[re.Match]:
    return HEADING_RE.match(line)


def parse_sections(text: str, skip_fenced: bool = True) -> ParsedDocument:
    """
    Split a document into sections keyed by heading text.

    A heading line (``#`` to ``######`` followed by text) opens a new section
    that runs until the next heading of any level. When the same heading text
    appears twice, the later section takes the key and the earlier one stays
    in place under a shadow key (``"Usage [shadowed 1]"``); the heading is
    recorded in ``duplicates`` and the shadow key in ``shadowed``.

    Args:
        text: Raw document text
        skip_fenced: Ignore heading-like lines inside fenced code blocks

    Returns:
        ParsedDocument whose section texts re-join (with ``\\n``) to the input
    """
    parsed = ParsedDocument()
    if not text:
        return parsed

    current_key = PREAMBLE_KEY
    current_level = 0
    current_lines: List[str] = []
    fence: Optional[str] = None

    def flush():
        if current_key == PREAMBLE_KEY and not current_lines:
            return
        if current_key in parsed.sections:
            parsed.duplicates.append(current_key)
            shadow_key = shadow_key_for(current_key, parsed.duplicates.count(current_key))
            parsed.shadowed.append(shadow_key)
            parsed.sections = {
                (shadow_key if key == current_key else key):
                    (replace(section, key=shadow_key) if key == current_key else section)
                for key, section in parsed.sections.items()
            }
        parsed.sections[current_key] = Section(
            key=current_key,
            level=current_level,
            text="\n".join(current_lines),
        )

    for line in text.split("\n"):
        if skip_fenced:
            fence_match = FENCE_RE.match(line)
            if fence_match:
                marker = fence_match.group(1)
                if fence is None:
                    fence = marker
                elif marker[0] == fence[0] and len(marker) >= len(fence):
                    fence = None
                current_lines.append(line)
                continue
            if fence is not None:
                current_lines.append(line)
                continue

        match = _heading(line)
        if match:
            flush()
            current_key = match.group(2).strip()
            current_level = len(match.group(1))
            current_lines = [line]
        else:
            current_lines.append(line)

    flush()
    return parsed


def render_sections(sections: Iterable[Section]) -> str:
    """Join section texts back into a document."""
    return "\n".join(section.text for section in sections)


def join_blocks(blocks: Iterable[str]) -> str:
    """
    Join text blocks so that each one starts on its own paragraph.

    Blocks are never modified; a blank line is inserted between two blocks
    only when the first does not already end with one.
    """
    out = ""
    for block in blocks:
        if not out:
            out = block
            continue
        if out.endswith("\n\n"):
            out += block
        elif out.endswith("\n"):
            out += "\n" + block
        else:
            out += "\n\n" + block
    return out


def word_count(text: str) -> int:
    return len(WORD_RE.findall(text))


def word_set(text: str) -> set:
    return set(w.lower() for w in WORD_RE.findall(text))


def extract_code_blocks(text: str) -> List[str]:
    """Fenced code blocks in order, fence lines included."""
    blocks: List[str] = []
    fence: Optional[str] = None
    current: List[str] = []
    for line in text.split("\n"):
        match = FENCE_RE.match(line)
        if fence is None:
            if match:
                fence = match.group(1)
                current = [line]
            continue
        current.append(line)
        if match and match.group(1)[0] == fence[0] and len(match.group(1)) >= len(fence):
            blocks.append("\n".join(current))
            fence = None
    if fence is not None and current:
        # unterminated fence runs to end of document
        blocks.append("\n".join(current))
    return blocks


def strip_code_blocks(text: str) -> str:
    for block in extract_code_blocks(text):
        text = text.replace(block, "")
    return text


def section_body(section: Section) -> str:
    return section.body
