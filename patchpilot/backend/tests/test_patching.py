from __future__ import annotations

from patchpilot_api.services.agents.workflow.results import Failure, FailureKind, Ok
from patchpilot_api.services.agents.workflow.tools.patching import (
    apply_patch,
    parse_unified_diff,
    select_file_patch,
)

SOURCE = "def scale(x):\n    y = x * 2\n    return y\n"


def _apply(content: str, diff: str) -> str:
    parsed = parse_unified_diff(diff)
    assert isinstance(parsed, Ok)
    result = apply_patch(content, parsed.value[0])
    assert isinstance(result, Ok), result
    return result.value


def test_parse_reads_paths_and_counts() -> None:
    parsed = parse_unified_diff(
        "diff --git a/utils.py b/utils.py\n"
        "index 123..456 100644\n"
        "--- a/utils.py\n"
        "+++ b/utils.py\n"
        "@@ -1,3 +1,3 @@\n"
        " def scale(x):\n"
        "-    y = x * 2\n"
        "+    z = x * 2\n"
        "     return y\n"
    )

    assert isinstance(parsed, Ok)
    (patch,) = parsed.value
    assert patch.old_path == "utils.py"
    assert patch.new_path == "utils.py"
    (hunk,) = patch.hunks
    assert (hunk.old_start, hunk.old_count, hunk.new_start, hunk.new_count) == (1, 3, 1, 3)
    assert hunk.before == ["def scale(x):", "    y = x * 2", "    return y"]
    assert hunk.after == ["def scale(x):", "    z = x * 2", "    return y"]


def test_parse_new_file_has_no_old_path() -> None:
    parsed = parse_unified_diff("--- /dev/null\n+++ b/new.py\n@@ -0,0 +1,2 @@\n+a = 1\n+b = 2\n")

    assert isinstance(parsed, Ok)
    assert parsed.value[0].old_path is None
    assert parsed.value[0].new_path == "new.py"


def test_parse_rejects_malformed_header() -> None:
    result = parse_unified_diff("--- a/x\n+++ b/x\n@@ nonsense @@\n-a\n+b\n")

    assert isinstance(result, Failure)
    assert result.kind is FailureKind.parse_error


def test_parse_rejects_text_without_hunks() -> None:
    result = parse_unified_diff("just some prose")

    assert isinstance(result, Failure)
    assert result.kind is FailureKind.parse_error


def test_apply_replaces_lines_and_keeps_trailing_newline() -> None:
    out = _apply(SOURCE, "@@ -2,1 +2,1 @@\n-    y = x * 2\n+    y = x * 3\n")

    assert out == "def scale(x):\n    y = x * 3\n    return y\n"


def test_apply_finds_hunk_away_from_claimed_position() -> None:
    out = _apply(SOURCE, "@@ -40,2 +40,2 @@\n     y = x * 2\n-    return y\n+    return y + 1\n")

    assert out.endswith("    return y + 1\n")


def test_apply_tolerates_trailing_whitespace_differences() -> None:
    content = "a = 1   \nb = 2\n"

    out = _apply(content, "@@ -1,2 +1,2 @@\n a = 1\n-b = 2\n+b = 3\n")

    assert out == "a = 1\nb = 3\n"


def test_apply_without_trailing_newline_keeps_it_absent() -> None:
    out = _apply("a\nb", "@@ -2,1 +2,1 @@\n-b\n+c\n")

    assert out == "a\nc"


def test_apply_to_empty_file_creates_content() -> None:
    out = _apply("", "--- /dev/null\n+++ b/new.py\n@@ -0,0 +1,2 @@\n+a = 1\n+b = 2\n")

    assert out == "a = 1\nb = 2\n"


def test_apply_mismatch_is_reported() -> None:
    parsed = parse_unified_diff("@@ -1,1 +1,1 @@\n-not here\n+x\n")
    assert isinstance(parsed, Ok)

    result = apply_patch(SOURCE, parsed.value[0])

    assert isinstance(result, Failure)
    assert result.kind is FailureKind.apply_mismatch


def test_select_file_patch_picks_matching_path() -> None:
    parsed = parse_unified_diff(
        "--- a/one.py\n+++ b/one.py\n@@ -1 +1 @@\n-a\n+b\n"
        "--- a/two.py\n+++ b/two.py\n@@ -1 +1 @@\n-c\n+d\n"
    )
    assert isinstance(parsed, Ok)
    assert len(parsed.value) == 2

    chosen = select_file_patch(parsed.value, "two.py")
    missing = select_file_patch(parsed.value, "three.py")

    assert isinstance(chosen, Ok)
    assert chosen.value.new_path == "two.py"
    assert isinstance(missing, Failure)
