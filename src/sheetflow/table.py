"""
Tabular Parser (Layer 1: Raw Sheet Text -> Table).

Turns the CSV export of a spreadsheet into a header-indexed Table.
No domain knowledge lives here.

Scanner rules:
    - A leading byte-order mark is dropped
    - CRLF and lone CR become LF before scanning
    - A quote opens a quoted section; inside it `""` is a literal quote
      and commas / line breaks are data
    - Outside quotes `,` ends a field and LF ends a row
    - End of input closes an unterminated quote

Post-processing trims every cell and drops rows whose cells are all empty.
The first remaining row is the header.
"""

import csv
from dataclasses import dataclass, field
from io import StringIO
from typing import Dict, List, Sequence

BOM = "\ufeff"
QUOTE = '"'
DELIMITER = ","


def _scan(text: str) -> List[List[str]]:
    """Split normalized text into raw (untrimmed) rows of cells."""
    rows: List[List[str]] = []
    row: List[str] = []
    cell: List[str] = []
    in_quotes = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        if in_quotes:
            if ch == QUOTE:
                if i + 1 < n and text[i + 1] == QUOTE:
                    cell.append(QUOTE)
                    i += 1
                else:
                    in_quotes = False
            else:
                cell.append(ch)
        elif ch == QUOTE:
            in_quotes = True
        elif ch == DELIMITER:
            row.append("".join(cell))
            cell = []
        elif ch == "\n":
            row.append("".join(cell))
            cell = []
            rows.append(row)
            row = []
        else:
            cell.append(ch)
        i += 1

    row.append("".join(cell))
    rows.append(row)
    return rows


@dataclass(frozen=True)
class Table:
    """
    Parsed sheet: header plus data rows, with case-insensitive column lookup.

    Properties:
        header: Column names as written in the sheet
        rows: Data rows (header excluded); rows may be shorter than the header
    """

    header: Sequence[str]
    rows: Sequence[Sequence[str]] = ()
    _columns: Dict[str, int] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        columns: Dict[str, int] = {}
        for position, name in enumerate(self.header):
            # first occurrence wins, like a left-to-right scan of the header
            columns.setdefault(name.lower(), position)
        object.__setattr__(self, "_columns", columns)

    def index_of(self, name: str) -> int:
        """
        Position of a column, matched case-insensitively.

        Returns:
            Column index, or -1 if the sheet has no such column
        """
        return self._columns.get(str(name).lower(), -1)

    def has_column(self, name: str) -> bool:
        return self.index_of(name) >= 0

    def cell(self, row: Sequence[str], name: str, default: str = "") -> str:
        """
        Read a named cell of a row.

        Missing columns, short rows and empty cells all yield `default`.
        """
        position = self.index_of(name)
        if position < 0 or position >= len(row):
            return default
        return row[position] or default

    def records(self) -> List[Dict[str, str]]:
        """Rows as dicts keyed by lower-cased column name."""
        return [
            {name: self.cell(row, name) for name in self._columns}
            for row in self.rows
        ]


def parse_table(text: str) -> Table:
    """
    Parse CSV text into a Table.

    Args:
        text: Raw sheet export

    Returns:
        Table (empty header and no rows for blank input)
    """
    if text.startswith(BOM):
        text = text[1:]
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    trimmed = [[c.strip() for c in row] for row in _scan(text)]
    kept = [row for row in trimmed if any(c != "" for c in row)]
    if not kept:
        return Table(header=())

    header = list(kept[0])
    header[0] = header[0].lstrip(BOM)
    return Table(header=tuple(header), rows=tuple(tuple(r) for r in kept[1:]))


def format_table(header: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """
    Serialize a header and rows back to CSV text.

    Cells that need it (commas, quotes, line breaks) are quoted, so
    `parse_table(format_table(t.header, t.rows))` reproduces `t`.
    """
    out = StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(row)
    return out.getvalue()


__all__ = ["Table", "parse_table", "format_table"]
