"""
Document metadata parsing.

Generated documents carry metadata either as a YAML-ish frontmatter block at
the top of the file or as bold ``**Key:** value`` lines near the top (the
format used by the templates). Both are parsed with simple ``key: value``
splitting; nested YAML is not supported.
"""

import re
from typing import Dict, List, Optional, Tuple

BOLD_META_RE = re.compile(r"^\*\*(.+?):\*\*\s*(.+)$")
META_SCAN_LINES = 20


def parse_frontmatter(content: str) -> Tuple[Optional[Dict], str]:
    """
    Parse YAML frontmatter from markdown content.

    Returns:
        (metadata_dict, body_content)
    """
    if not content.startswith("---\n"):
        return None, content

    end_match = re.search(r'\n---[ \t]*(\n|$)', content[3:])
    if not end_match:
        return None, content

    frontmatter_text = content[4:end_match.start() + 3]
    body = content[end_match.end() + 3:]

    metadata = {}
    for line in frontmatter_text.split('\n'):
        if ':' in line:
            key, value = line.split(':', 1)
            metadata[key.strip()] = value.strip().strip('"\'')

    return metadata, body


def split_frontmatter(content: str) -> Tuple[str, str]:
    """Split content into (raw frontmatter block, body). Block is '' when absent."""
    metadata, body = parse_frontmatter(content)
    if metadata is None:
        return "", content
    return content[:len(content) - len(body)], body


def extract_bold_metadata(content: str) -> Dict[str, str]:
    """``**Key:** value`` lines from the first lines of a document."""
    metadata: Dict[str, str] = {}
    for line in content.split("\n")[:META_SCAN_LINES]:
        match = BOLD_META_RE.match(line.strip())
        if match:
            metadata[match.group(1).strip().lower()] = match.group(2).strip()
    return metadata


def bold_metadata_lines(content: str) -> List[str]:
    """The raw ``**Key:** value`` lines, in document order."""
    return [
        line for line in content.split("\n")[:META_SCAN_LINES]
        if BOLD_META_RE.match(line.strip())
    ]


def extract_metadata(content: str) -> Dict[str, str]:
    """All metadata a document declares; frontmatter wins on key clashes."""
    metadata = extract_bold_metadata(content)
    frontmatter, _ = parse_frontmatter(content)
    if frontmatter:
        metadata.update({k.lower(): v for k, v in frontmatter.items()})
    return metadata


def carry_metadata(old_content: str, new_content: str) -> str:
    """
    Re-prepend the old document's metadata to new content.

    The old frontmatter block is kept when the new content has none; old
    ``**Key:** value`` lines are added for keys the new content does not
    already declare.
    """
    old_block, _ = split_frontmatter(old_content)
    new_block, new_body = split_frontmatter(new_content)

    declared = extract_bold_metadata(new_content)
    carried = [
        line for line in bold_metadata_lines(old_content)
        if BOLD_META_RE.match(line.strip()).group(1).strip().lower() not in declared
    ]

    body = new_body
    if carried:
        body = "  \n".join(line.rstrip() for line in carried) + "\n\n" + body

    return (new_block or old_block) + body
