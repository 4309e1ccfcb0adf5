"""Security validators for input validation."""

import os
import re
from pathlib import Path
from typing import Optional, Tuple

DOCUMENT_SUFFIXES = (".md", ".markdown", ".txt")


class PathValidator:
    """Validates filesystem paths to prevent traversal attacks."""

    @staticmethod
    def validate_document_path(
        path_str: str,
        project_root: Path,
    ) -> Tuple[bool, str, Optional[Path]]:
        """
        Validate a document target path.

        Prevents:
        - Paths escaping the project root (../, absolute paths elsewhere)
        - Null bytes and excessive length
        - Writing over directories or non-document files

        Args:
            path_str: Target path, absolute or relative to the project root
            project_root: Directory all managed documents must live under

        Returns:
            Tuple of (is_valid, error_message, resolved_path)
        """
        if not path_str or len(str(path_str)) > 1000:
            return False, "Invalid path length", None

        if "\x00" in str(path_str):
            return False, "Null byte in path", None

        root = Path(project_root).resolve()
        candidate = Path(path_str)
        if not candidate.is_absolute():
            candidate = root / candidate
        resolved = Path(os.path.realpath(candidate))

        try:
            resolved.relative_to(root)
        except ValueError:
            return False, "Path traversal detected", None

        if resolved.is_dir():
            return False, f"Path is a directory: {path_str}", None

        if resolved.suffix.lower() not in DOCUMENT_SUFFIXES:
            return False, f"Unsupported document type: {resolved.suffix or '(none)'}", None

        return True, "", resolved

    @staticmethod
    def validate_heading(heading: str) -> Tuple[bool, str, Optional[str]]:
        """
        Validate a section heading passed on the command line.

        Args:
            heading: Heading text without leading ``#``

        Returns:
            Tuple of (is_valid, error_message, sanitized_heading)
        """
        if not heading or len(heading) > 200:
            return False, "Invalid heading length", None
        if "\n" in heading or "\r" in heading:
            return False, "Heading must be a single line", None
        sanitized = re.sub(r"^#+\s*", "", heading.strip())
        if not sanitized:
            return False, "Empty heading", None
        return True, "", sanitized
