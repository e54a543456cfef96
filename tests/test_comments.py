"""Tests for comment description harvesting."""

from flowscript.parse.comments import extract_comment_for_line


class TestExtractCommentForLine:
    """Descriptions come from the comment run directly above a line."""

    def test_consecutive_line_comments_are_joined(self):
        """Adjacent // lines are joined with spaces."""
        lines = ["// first", "// second", "const a = 1;"]
        assert extract_comment_for_line(lines, 3) == "first second"

    def test_blank_line_detaches_comment(self):
        """A blank line between comment and statement drops the comment."""
        lines = ["// detached", "", "const a = 1;"]
        assert extract_comment_for_line(lines, 3) is None

    def test_jsdoc_block(self):
        """Block comment markers and leading stars are stripped."""
        lines = ["/**", " * Sends the report", " * to the team", " */", "const a = 1;"]
        assert extract_comment_for_line(lines, 5) == "Sends the report to the team"

    def test_single_line_block(self):
        """A one-line block comment yields its text."""
        lines = ["/* Quick note */", "run();"]
        assert extract_comment_for_line(lines, 2) == "Quick note"

    def test_stops_at_code(self):
        """Only the comment run after the last code line counts."""
        lines = ["// old", "const x = 1;", "// note", "call();"]
        assert extract_comment_for_line(lines, 4) == "note"

    def test_indented_comment(self):
        """Indentation around the comment is ignored."""
        lines = ["    // Fetch the data", "    const data = load();"]
        assert extract_comment_for_line(lines, 2) == "Fetch the data"

    def test_no_comment(self):
        """A line with code above it has no description."""
        assert extract_comment_for_line(["const a = 1;", "const b = 2;"], 2) is None

    def test_first_line(self):
        """Line 1 has nothing above it."""
        assert extract_comment_for_line(["const a = 1;"], 1) is None

    def test_trailing_block_comment_is_code(self):
        """Code ending in a /* */ note is a code line, not a description."""
        lines = ["const limit = 5; /* max rows */", "run();"]
        assert extract_comment_for_line(lines, 2) is None

    def test_trailing_block_comment_ends_run(self):
        """A comment above a code line with a trailing note stays detached."""
        lines = ["// Load rows", "load(); /* cached */", "// Send them", "send();"]
        assert extract_comment_for_line(lines, 4) == "Send them"
