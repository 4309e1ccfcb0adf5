"""Shared sample documents for the doc-upkeep test suite."""

MANUAL_USAGE = """## Usage

<!-- MANUAL_EDIT_START -->
<!-- MANUAL_AUTHOR: jane -->
Run the tool with `--profile team` on shared machines.
<!-- MANUAL_EDIT_END -->
"""

GUIDE_EXISTING = """# Widget Guide

Widgets are small reusable components for building dashboards.

## Installation

Install the package with pip and import the widgets module.

""" + MANUAL_USAGE + """
## Configuration

Settings live in a YAML file next to the dashboard definition.
"""

GUIDE_CANDIDATE = """# Widget Guide

Widgets are small reusable components for building dashboards.

## Installation

Install the package with pip and import the widgets module.

## Usage

Call `render()` on any widget to draw it.

## Configuration

Settings live in a YAML file next to the dashboard definition.
"""

GUIDE_CANDIDATE_WITH_NEW_SECTION = """# Widget Guide

Widgets are small reusable components for building dashboards.

## Installation

Install the package with pip and import the widgets module.

## Usage

Call `render()` on any widget to draw it.

## Troubleshooting

Restart the dashboard if widgets stop refreshing.

## Configuration

Settings live in a YAML file next to the dashboard definition.
"""

SETUP_WITH_CODE = """## Setup

Run:

```bash
make install
```
"""

SETUP_WITHOUT_CODE = """## Setup

Run the installer.
"""

TABLE_SECTION = """## Limits

| Plan | Calls |
|------|-------|
| Free | 100 |

Old prose.
"""

FRONTMATTER_DOC = """---
title: Guide
---
# Guide

**Owner:** platform

Old intro.

## Custom Notes

<!-- PRESERVE_START -->
Keep me.
<!-- PRESERVE_END -->
"""

SECTION_NAMES = ["Overview", "Install", "Usage", "Config", "Deploy", "Support"]


def short_document() -> str:
    """Roughly 100 words spread over six sections."""
    parts = ["# Service Guide", ""]
    for name in SECTION_NAMES:
        parts += [
            f"## {name}",
            "",
            f"The {name.lower()} notes cover basic facts about the service and its daily use.",
            "",
        ]
    return "\n".join(parts)


def long_document() -> str:
    """Roughly 500 words; every section grows far beyond its short version."""
    parts = ["# Service Guide", ""]
    for name in SECTION_NAMES:
        filler = " ".join(f"{name.lower()}detail{i}" for i in range(70))
        parts += [
            f"## {name}",
            "",
            f"The {name.lower()} notes cover basic facts about the service and its daily use.",
            filler,
            "",
        ]
    return "\n".join(parts)
