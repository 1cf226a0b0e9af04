"""
Tests for AT parameter tokenizing.
"""

import pytest

from atgsm.exceptions import ATParseError
from atgsm.parsers.tokens import is_number, split_tokens


class TestSplitTokens:
    """Test parameter list splitting."""

    def test_quoted_and_plain(self):
        """Test quotes are removed."""
        assert split_tokens('"SM",6,40') == ["SM", "6", "40"]

    def test_empty_fields_kept(self):
        """Test empty fields between separators are kept."""
        assert split_tokens("0,,123") == ["0", "", "123"]
        assert split_tokens(",28") == ["", "28"]

    def test_quoted_separator(self):
        """Test separators inside quotes do not split."""
        assert split_tokens('"a,b",1') == ["a,b", "1"]

    def test_spaces(self):
        """Test whitespace around tokens is dropped, inner spaces kept."""
        assert split_tokens(" 24, 99") == ["24", "99"]
        assert split_tokens('0, "Your balance"') == ["0", "Your balance"]

    def test_group(self):
        """Test parentheses produce a nested list."""
        assert split_tokens('("GSM","UCS2")') == [["GSM", "UCS2"]]

    def test_network_scan(self):
        """Test a network scan list with trailing ranges."""
        tokens = split_tokens('(2,"Op","O","51010",7),,(0-4)')
        assert tokens == [["2", "Op", "O", "51010", "7"], "", ["0-4"]]

    def test_empty(self):
        """Test an empty string gives no tokens."""
        assert split_tokens("") == []

    def test_custom_separator(self):
        """Test splitting on another separator."""
        assert split_tokens("a;b", separator=";") == ["a", "b"]

    def test_unterminated_quote(self):
        """Test an unterminated quote raises ATParseError."""
        with pytest.raises(ATParseError):
            split_tokens('0,"Your balance')

    def test_unbalanced_parenthesis(self):
        """Test unbalanced parentheses raise ATParseError."""
        with pytest.raises(ATParseError):
            split_tokens("(1,2")
        with pytest.raises(ATParseError):
            split_tokens("1,2)")


class TestIsNumber:
    """Test integer token detection."""

    def test_numbers(self):
        assert is_number("12") is True
        assert is_number("-3") is True
        assert is_number(" 7 ") is True

    def test_not_numbers(self):
        assert is_number("") is False
        assert is_number("SM") is False
        assert is_number(["1"]) is False
