"""Tests for the .env file parser and writer."""

import pytest

from op_env_sync.env_file import (
    apply_changes,
    format_value,
    parse,
    parse_lines,
    read_env_file,
    serialize,
)
from op_env_sync.errors import EnvParseError, MalformedKeyError, UnterminatedQuoteError


class TestParse:
    """parse() tests."""

    def test_basic_assignments(self):
        """Test plain NAME=VALUE lines."""
        assert parse("API_KEY=abc123\nDEBUG=true\n") == {"API_KEY": "abc123", "DEBUG": "true"}

    def test_keeps_file_order(self):
        """Test that variables come back in file order."""
        env_vars = parse("ZED=1\nALPHA=2\nMIDDLE=3\n")
        assert list(env_vars) == ["ZED", "ALPHA", "MIDDLE"]

    def test_ignores_comments_and_blank_lines(self):
        """Test that comments and blank lines are not variables."""
        text = "# database\n\nDB_HOST=localhost\n   # indented comment\n\n"
        assert parse(text) == {"DB_HOST": "localhost"}

    def test_export_prefix(self):
        """Test that 'export ' is accepted and stripped."""
        assert parse("export PATH_EXTRA=/opt/bin\n") == {"PATH_EXTRA": "/opt/bin"}

    def test_empty_value(self):
        """Test that NAME= gives an empty string."""
        assert parse("EMPTY=\n") == {"EMPTY": ""}

    def test_value_containing_equals(self):
        """Test that only the first '=' separates name and value."""
        assert parse("URL=postgres://u:p@h/db?sslmode=require\n") == {
            "URL": "postgres://u:p@h/db?sslmode=require"
        }

    def test_unquoted_value_is_trimmed(self):
        """Test that whitespace around an unquoted value is dropped."""
        assert parse("NAME =  value  \n") == {"NAME": "value"}

    def test_hash_in_unquoted_value_is_kept(self):
        """Test that '#' inside an unquoted value is not a comment."""
        assert parse("COLOR=#ff0000\n") == {"COLOR": "#ff0000"}

    def test_double_quoted_escapes(self):
        """Test escape sequences in double quotes."""
        text = 'CERT="line1\\nline2"\nQUOTE="say \\"hi\\""\nSLASH="a\\\\b"\n'
        assert parse(text) == {
            "CERT": "line1\nline2",
            "QUOTE": 'say "hi"',
            "SLASH": "a\\b",
        }

    def test_unknown_escape_kept_literally(self):
        """Test that an unknown escape keeps its backslash."""
        assert parse('PATTERN="\\d+"\n') == {"PATTERN": "\\d+"}

    def test_single_quotes_are_literal(self):
        """Test that single-quoted values are not unescaped."""
        assert parse("RAW='a\\nb $HOME'\n") == {"RAW": "a\\nb $HOME"}

    def test_comment_after_closing_quote(self):
        """Test that a comment may follow a quoted value."""
        assert parse('TOKEN="abc" # rotated monthly\n') == {"TOKEN": "abc"}

    def test_crlf_line_endings(self):
        """Test that CRLF files parse like LF files."""
        assert parse("A=1\r\nB=2\r\n") == {"A": "1", "B": "2"}

    def test_duplicate_name_last_wins(self, caplog):
        """Test that a repeated name keeps the last value and warns."""
        env_vars = parse("A=1\nB=2\nA=3\n")

        assert env_vars == {"B": "2", "A": "3"}
        assert "assigned more than once" in caplog.text

    def test_empty_content(self):
        """Test that empty content has no variables."""
        assert parse("") == {}


class TestParseErrors:
    """Malformed input tests."""

    def test_missing_equals(self):
        """Test that a line without '=' is rejected with its line number."""
        with pytest.raises(MalformedKeyError, match="line 2"):
            parse("A=1\nNOT_AN_ASSIGNMENT\n")

    def test_invalid_name(self):
        """Test that names must match [A-Za-z_][A-Za-z0-9_]*."""
        with pytest.raises(MalformedKeyError, match="invalid variable name"):
            parse("1BAD=value\n")

    def test_name_with_dash(self):
        """Test that a dash is not allowed in names."""
        with pytest.raises(MalformedKeyError):
            parse("MY-KEY=value\n")

    def test_unterminated_double_quote(self):
        """Test that an unclosed double quote is rejected."""
        with pytest.raises(UnterminatedQuoteError, match="line 1"):
            parse('KEY="never closed\n')

    def test_unterminated_single_quote(self):
        """Test that an unclosed single quote is rejected."""
        with pytest.raises(UnterminatedQuoteError):
            parse("KEY='never closed\n")

    def test_text_after_closing_quote(self):
        """Test that stray text after a quoted value is rejected."""
        with pytest.raises(EnvParseError, match="after closing quote"):
            parse('KEY="value" trailing\n')

    def test_error_keeps_line_number(self):
        """Test that the error carries the offending line number."""
        with pytest.raises(EnvParseError) as exc_info:
            parse("A=1\n\n# comment\nB\n")
        assert exc_info.value.line_number == 4


class TestSerialize:
    """serialize() and format_value() tests."""

    def test_plain_values_unquoted(self):
        """Test that simple values are written bare."""
        assert serialize({"A": "1", "B": "hello"}) == "A=1\nB=hello\n"

    def test_empty_set(self):
        """Test that an empty set serializes to empty content."""
        assert serialize({}) == ""

    @pytest.mark.parametrize(
        "value",
        [
            "has space",
            " leading",
            "trailing ",
            "multi\nline",
            "carriage\rreturn",
            "tab\there",
            '"starts with quote',
            "'single",
            'back\\slash "and" quote\n',
            "#not-a-comment",
            "",
            "ünïcödé",
        ],
    )
    def test_value_reads_back_unchanged(self, value):
        """Test that the parser reads back exactly what was written."""
        assert parse(serialize({"KEY": value})) == {"KEY": value}

    def test_quotes_values_with_spaces(self):
        """Test that a value with spaces is double quoted."""
        assert format_value("a b") == '"a b"'

    def test_rejects_invalid_name(self):
        """Test that invalid names cannot be written."""
        with pytest.raises(MalformedKeyError):
            serialize({"BAD NAME": "x"})


class TestApplyChanges:
    """apply_changes() tests."""

    def test_preserves_comments_and_order(self):
        """Test that untouched lines stay where they were."""
        text = "# header\nA=1\n\n# section\nB=2\nC=3\n"
        result = apply_changes(text, {"B": "20"})
        assert result == "# header\nA=1\n\n# section\nB=20\nC=3\n"

    def test_deletes_name(self):
        """Test that a None change removes the assignment."""
        assert apply_changes("A=1\nB=2\n", {"A": None}) == "B=2\n"

    def test_appends_new_names(self):
        """Test that new names go to the end in the given order."""
        result = apply_changes("A=1\n", {"Z": "26", "M": "13"})
        assert result == "A=1\nZ=26\nM=13\n"

    def test_keeps_export_prefix(self):
        """Test that an exported variable stays exported."""
        assert apply_changes("export A=1\n", {"A": "2"}) == "export A=2\n"

    def test_drops_later_duplicates(self):
        """Test that an updated name keeps only its first line."""
        assert apply_changes("A=1\nB=2\nA=3\n", {"A": "9"}) == "A=9\nB=2\n"

    def test_keeps_crlf(self):
        """Test that CRLF content stays CRLF."""
        assert apply_changes("A=1\r\nB=2\r\n", {"B": "3", "C": "4"}) == "A=1\r\nB=3\r\nC=4\r\n"

    def test_new_file(self):
        """Test writing into empty content."""
        assert apply_changes("", {"A": "1"}) == "A=1\n"

    def test_deleting_everything(self):
        """Test that removing the only variable leaves empty content."""
        assert apply_changes("A=1\n", {"A": None}) == ""

    def test_result_parses_to_expected_set(self):
        """Test that the rewritten content parses to the merged variables."""
        text = "# keep me\nA=1\nB='two words'\nC=3\n"
        result = apply_changes(text, {"A": None, "B": "new value", "D": "4"})
        assert parse(result) == {"B": "new value", "C": "3", "D": "4"}
        assert result.startswith("# keep me\n")


class TestReadEnvFile:
    """read_env_file() tests."""

    def test_missing_file_is_empty(self, tmp_path):
        """Test that a missing file reads as no variables."""
        text, env_vars = read_env_file(str(tmp_path / "missing.env"))
        assert text == ""
        assert env_vars == {}

    def test_reads_and_parses(self, tmp_path):
        """Test reading an existing file."""
        path = tmp_path / ".env"
        path.write_text("A=1\n")

        text, env_vars = read_env_file(str(path))

        assert text == "A=1\n"
        assert env_vars == {"A": "1"}

    def test_parse_lines_keeps_raw(self):
        """Test that parse_lines returns every physical line."""
        lines = parse_lines("# c\nA=1\n")
        assert [line.raw for line in lines] == ["# c", "A=1"]
        assert not lines[0].is_assignment()
        assert lines[1].is_assignment()
