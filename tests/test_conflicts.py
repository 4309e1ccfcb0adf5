"""Tests for conflict classification and document analysis."""

from dataclasses import fields

import pytest

from doc_upkeep.analysis import analyze, line_change_stats, similarity
from doc_upkeep.conflicts import (
    CodeChangeConflict,
    ConflictType,
    CustomFormattingConflict,
    ManualEditConflict,
    NoConflict,
    Severity,
    SignificantChangeConflict,
    classify,
    classify_all,
    detect_custom_formatting,
    word_delta_ratio,
)
from doc_upkeep.sections import Section, parse_sections
from doc_upkeep.thresholds import MergeThresholds, resolve_thresholds
from tests.fixtures import (
    GUIDE_CANDIDATE,
    GUIDE_EXISTING,
    MANUAL_USAGE,
    SETUP_WITH_CODE,
    SETUP_WITHOUT_CODE,
    TABLE_SECTION,
)


def section(text: str) -> Section:
    (only,) = list(parse_sections(text))
    return only


def words(n: int, prefix: str = "w") -> str:
    return " ".join(f"{prefix}{i}" for i in range(n))


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------

class TestClassify:

    def test_identical_is_no_conflict(self):
        verdict = classify(section(MANUAL_USAGE), section(MANUAL_USAGE))
        assert isinstance(verdict, NoConflict)
        assert not verdict.is_conflict

    def test_trailing_whitespace_ignored(self):
        verdict = classify(section("## A\nbody\n\n"), section("## A\nbody"))
        assert verdict.type is ConflictType.NONE

    def test_manual_edit_is_high_and_short_circuits(self):
        candidate = section("## Usage\n\n" + words(50) + "\n\n```\ncode\n```\n")
        verdict = classify(section(MANUAL_USAGE), candidate)
        assert isinstance(verdict, ManualEditConflict)
        assert verdict.severity is Severity.HIGH
        assert len(verdict.reasons) == 1

    def test_large_word_delta_is_high(self):
        verdict = classify(section("## A\n" + words(10)), section("## A\n" + words(20)))
        assert isinstance(verdict, SignificantChangeConflict)
        assert verdict.severity is Severity.HIGH
        assert verdict.word_delta_ratio == pytest.approx(1.0)

    def test_moderate_word_delta_is_medium(self):
        verdict = classify(section("## A\n" + words(10)), section("## A\n" + words(14)))
        assert verdict.type is ConflictType.SIGNIFICANT_CHANGES
        assert verdict.severity is Severity.MEDIUM

    def test_small_word_delta_is_no_conflict(self):
        verdict = classify(section("## A\n" + words(10)), section("## A\n" + words(12, "x")))
        assert verdict.type is ConflictType.NONE

    def test_empty_existing_body_counts_as_full_change(self):
        assert word_delta_ratio("", "some words") == 1.0
        assert word_delta_ratio("", "") == 0.0

    def test_custom_formatting(self):
        candidate = section("## Limits\n\nNew prose covering plans here.\n")
        verdict = classify(section(TABLE_SECTION), candidate)
        assert isinstance(verdict, CustomFormattingConflict)
        assert verdict.constructs == ["table"]
        assert verdict.severity is Severity.MEDIUM

    def test_code_block_count_change(self):
        verdict = classify(section(SETUP_WITH_CODE), section(SETUP_WITHOUT_CODE))
        assert isinstance(verdict, CodeChangeConflict)
        assert verdict.existing_blocks == 1
        assert verdict.candidate_blocks == 0
        assert verdict.severity is Severity.MEDIUM

    def test_first_check_decides_type_highest_severity_wins(self):
        existing = section("## A\n" + words(10) + "\n\n```\nx\n```\n")
        candidate = section("## A\n" + words(30))
        verdict = classify(existing, candidate)
        assert verdict.type is ConflictType.SIGNIFICANT_CHANGES
        assert verdict.severity is Severity.HIGH
        assert len(verdict.reasons) == 2

    def test_thresholds_are_tunable(self):
        strict = MergeThresholds(medium_word_ratio=0.1, high_word_ratio=0.15)
        verdict = classify(section("## A\n" + words(10)), section("## A\n" + words(12)), strict)
        assert verdict.severity is Severity.HIGH

    def test_to_dict(self):
        verdict = classify(section(SETUP_WITH_CODE), section(SETUP_WITHOUT_CODE))
        data = verdict.to_dict()
        assert data["section"] == "Setup"
        assert data["type"] == "code_changes"
        assert data["severity"] == "medium"
        assert data["existing_blocks"] == 1


class TestDetectCustomFormatting:

    def test_marker_comments_are_not_inline_html(self):
        assert detect_custom_formatting("<!-- note -->\ntext") == []

    def test_inline_html(self):
        assert detect_custom_formatting("line<br/>break") == ["inline_html"]

    def test_blockquote(self):
        assert detect_custom_formatting("> quoted") == ["blockquote"]

    def test_nested_list(self):
        assert "nested_list" in detect_custom_formatting("- a\n  - b\n    - c")
        assert detect_custom_formatting("- a\n  - b") == []

    def test_code_blocks_ignored(self):
        assert detect_custom_formatting("```\n> not a quote\n```") == []


class TestClassifyAll:

    def test_only_shared_conflicting_keys(self):
        conflicts = classify_all(parse_sections(GUIDE_EXISTING), parse_sections(GUIDE_CANDIDATE))
        assert [c.key for c in conflicts] == ["Usage"]
        assert conflicts[0].type is ConflictType.MANUAL_EDITS


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

class TestAnalyze:

    def test_similarity_is_jaccard(self):
        assert similarity("a b c", "a b d") == pytest.approx(0.5)
        assert similarity("", "") == 0.0

    def test_similarity_ignores_case(self):
        assert similarity("Hello World", "hello world") == 1.0

    def test_changes_and_conflicts(self):
        analysis = analyze(GUIDE_EXISTING, GUIDE_CANDIDATE)
        assert analysis.conflict_count == 1
        assert analysis.modification_count == 1
        assert analysis.addition_count == 0
        assert analysis.structural_changes == []

    def test_structural_changes(self):
        existing = "## A\none\n## B\ntwo\n## C\nthree"
        candidate = "## B\ntwo\n### A\none\n## C\nthree"
        types = [c.type for c in analyze(existing, candidate).structural_changes]
        assert types == ["section_reordering", "heading_level_change"]

    def test_metadata_collected(self):
        analysis = analyze("**Owner:** team\n# A\nx", "# A\nx")
        assert analysis.existing_metadata == {"owner": "team"}
        assert analysis.candidate_metadata == {}

    def test_line_change_stats(self):
        stats = line_change_stats("a\nb\nc", "a\nB\nc\nd")
        assert stats.lines_changed == 1
        assert stats.lines_added == 1
        assert stats.lines_deleted == 0


class TestThresholds:

    def test_default_for_unknown_type(self):
        assert resolve_thresholds("nope") == MergeThresholds()

    def test_changelog_override(self):
        assert resolve_thresholds("changelog").high_word_ratio == 0.9

    def test_profile_holds_only_tuned_knobs(self):
        assert [f.name for f in fields(MergeThresholds)] == [
            "merge_similarity",
            "version_conflicts",
            "replace_structural",
            "medium_word_ratio",
            "high_word_ratio",
            "nested_list_depth",
        ]
