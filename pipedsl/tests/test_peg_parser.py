"""
Tests for the Lark-based attribute line parser.
"""

import pytest

from pipedsl.dsl_peg_parser import AttributeSyntaxError, get_parser, parse_attributes


class TestAttributes:
    """Test parsing of '#@' lines."""

    def test_single_pair(self):
        assert parse_attributes("#@ owner: ci") == [("owner", "ci")]

    def test_multiple_pairs(self):
        result = parse_attributes("#@ owner: build-team, timeout: 30m")
        assert result == [("owner", "build-team"), ("timeout", "30m")]

    def test_trailing_comma(self):
        assert parse_attributes("#@ retries: 3,") == [("retries", "3")]

    def test_value_with_spaces(self):
        assert parse_attributes("#@ summary: runs the unit tests") == [
            ("summary", "runs the unit tests"),
        ]

    def test_quoted_value(self):
        result = parse_attributes('#@ summary: "Build, then package"')
        assert result == [("summary", "Build, then package")]

    def test_quoted_value_with_escapes(self):
        result = parse_attributes(r'#@ note: "say \"hi\""')
        assert result == [("note", 'say "hi"')]

    def test_dotted_key(self):
        assert parse_attributes("#@ ci.stage: test") == [("ci.stage", "test")]

    def test_value_with_colon(self):
        assert parse_attributes("#@ url: http://example.com:8080/x") == [
            ("url", "http://example.com:8080/x"),
        ]

    def test_surrounding_whitespace(self):
        assert parse_attributes("   #@owner:ci   ") == [("owner", "ci")]


class TestAttributeErrors:

    @pytest.mark.parametrize("line", [
        "#@",
        "#@ novalue",
        "#@ key:",
        '#@ key: "unterminated',
        "#@ 1key: x",
        "# plain comment",
    ])
    def test_invalid(self, line):
        with pytest.raises(AttributeSyntaxError):
            parse_attributes(line)

    def test_is_value_error(self):
        assert issubclass(AttributeSyntaxError, ValueError)


class TestParserCache:

    def test_parser_is_reused(self):
        assert get_parser() is get_parser()
