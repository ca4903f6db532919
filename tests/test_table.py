"""
Tests for the tabular parser (Layer 1: Raw Sheet Text -> Table).

We need to:
1. Strip BOM and normalize line endings
2. Honour quoted fields (commas, newlines, escaped quotes)
3. Trim cells and drop empty rows
4. Look columns up case-insensitively
"""

import pytest
from sheetflow.table import Table, parse_table, format_table


class TestScanning:
    """Test the quoted-field scanner."""

    def test_simple_rows(self):
        table = parse_table("a,b,c\n1,2,3\n4,5,6\n")
        assert list(table.header) == ["a", "b", "c"]
        assert [list(r) for r in table.rows] == [["1", "2", "3"], ["4", "5", "6"]]

    def test_bom_and_crlf(self):
        """BOM is stripped and CRLF behaves like LF."""
        table = parse_table("\ufeffLevel,qId,question_text\r\n1,L1Q1,Hello\n")
        assert table.index_of("level") == 0
        assert table.index_of("qId") == 1
        assert table.index_of("question_text") == 2
        assert [list(r) for r in table.rows] == [["1", "L1Q1", "Hello"]]

    def test_lone_carriage_return_ends_row(self):
        table = parse_table("a,b\r1,2\r")
        assert [list(r) for r in table.rows] == [["1", "2"]]

    def test_quoted_comma_and_escaped_quote(self):
        table = parse_table('a,b,c\n"x, y","z""w"\n')
        assert list(table.rows[0]) == ["x, y", 'z"w']

    def test_quoted_newline(self):
        """A quoted field may span lines without starting a new row."""
        table = parse_table('a,b\n"first\nsecond",2\n3,4\n')
        assert len(table.rows) == 2
        assert table.rows[0][0] == "first\nsecond"

    def test_unterminated_quote_runs_to_end(self):
        """End of input closes an open quote instead of raising."""
        table = parse_table('a,b\n1,"never closed\n2,3\n')
        assert len(table.rows) == 1
        assert table.rows[0][0] == "1"
        assert table.rows[0][1] == "never closed\n2,3"

    def test_cells_trimmed_and_empty_rows_dropped(self):
        table = parse_table("a , b\n  1 ,  2  \n , \n\n3,4")
        assert list(table.header) == ["a", "b"]
        assert [list(r) for r in table.rows] == [["1", "2"], ["3", "4"]]

    def test_blank_input(self):
        table = parse_table("")
        assert list(table.header) == []
        assert list(table.rows) == []


class TestLookup:
    """Test header lookup and cell access."""

    def test_index_of_is_case_insensitive(self):
        table = parse_table("Level,QID\n1,L1Q1\n")
        assert table.index_of("level") == 0
        assert table.index_of("qid") == 1
        assert table.index_of("LEVEL") == 0

    def test_missing_column(self):
        table = parse_table("level\n1\n")
        assert table.index_of("fallback") == -1
        assert not table.has_column("fallback")

    def test_cell_on_short_row_uses_default(self):
        table = parse_table("level,qId,next\n1,L1Q1\n")
        row = table.rows[0]
        assert table.cell(row, "qid") == "L1Q1"
        assert table.cell(row, "next") == ""
        assert table.cell(row, "next", "END") == "END"
        assert table.cell(row, "nope", "x") == "x"

    def test_records(self):
        table = parse_table("Key,Text\nhello,Hi there\n")
        assert table.records() == [{"key": "hello", "text": "Hi there"}]


class TestRoundTrip:
    """Parse -> format -> parse is stable for awkward cells."""

    @pytest.mark.parametrize("cell", [
        "plain",
        "with, comma",
        'with "quotes"',
        "with\nnewline",
        'all, of "them"\ntogether',
    ])
    def test_round_trip(self, cell):
        original = Table(header=("a", "b"), rows=((cell, "x"),))
        text = format_table(original.header, original.rows)
        parsed = parse_table(text)
        assert list(parsed.header) == ["a", "b"]
        assert [list(r) for r in parsed.rows] == [[cell, "x"]]

        again = parse_table(format_table(parsed.header, parsed.rows))
        assert again == parsed
