#!/usr/bin/env python3
"""
ShiftFinder Schedule Parser
Turns a published schedule spreadsheet (CSV or tab-separated export) into
shift records and derives the per-employee views shown by the web app.

Expected sheet layout:
    first row    -> headers, "<store>-<time>" per column (first column is the date)
    first column -> calendar date, YYYY-MM-DD (trailing text is tolerated)
    other cells  -> name of the employee working that store/time slot
"""

import re
from dataclasses import dataclass
from datetime import date as calendar_date
from datetime import datetime
from typing import Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class ShiftRecord:
    """One sheet cell naming an employee who works a store/time slot."""
    employee_name: str
    date: str  # raw date cell, validated on its leading YYYY-MM-DD only
    store: str
    shift_time: str

    def to_dict(self) -> dict:
        return {
            'employee_name': self.employee_name,
            'date': self.date,
            'store': self.store,
            'shift_time': self.shift_time,
        }


class ShiftScheduleParser:
    def __init__(self):
        # Cells that mean "nobody works this slot" (compared lower-cased)
        self.NO_SHIFT_MARKERS = {'—', '-', '', 'off', 'вых'}

        # Label used when a header has no "<store>-<time>" separator
        self.DEFAULT_SHIFT_LABEL = 'Смена'

        # Only the leading 10 characters of the date cell are checked
        self.DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}', re.ASCII)

        # Either delimiter splits a line; there is no quoting/escaping support
        self.DELIMITER_PATTERN = re.compile(r',|\t')
        self.LINE_PATTERN = re.compile(r'\r?\n')
        self.EDGE_QUOTE_PATTERN = re.compile(r'^"|"$')
        # Byte order marks count as whitespace at the edges of cells and text
        self.EDGE_SPACE_PATTERN = re.compile(r'^[\s\ufeff]+|[\s\ufeff]+$')

    def trim(self, text: str) -> str:
        return self.EDGE_SPACE_PATTERN.sub('', text)

    def tokenize_line(self, line: str) -> List[str]:
        """
        Split one sheet line into cells.

        This is a tolerant tokenizer, NOT an RFC-4180 CSV reader: commas or tabs
        inside quotes still split the cell. Each cell is trimmed and loses at most
        one leading and one trailing double quote.
        """
        cells = []
        for raw_cell in self.DELIMITER_PATTERN.split(line):
            cells.append(self.EDGE_QUOTE_PATTERN.sub('', self.trim(raw_cell)))
        return cells

    def decode_header(self, header: str) -> Tuple[str, str]:
        """Decode a column header into its (store, shift_time) slot descriptor."""
        if '-' not in header:
            return header, self.DEFAULT_SHIFT_LABEL

        # Only the last segment is the time: "Main-Early-Morning" -> ("Main-Early", "Morning")
        parts = header.split('-')
        shift_time = parts.pop().strip()
        store = '-'.join(parts).strip()
        return store, shift_time

    def is_no_shift(self, cell: Optional[str]) -> bool:
        if not cell:
            return True
        return cell.lower() in self.NO_SHIFT_MARKERS

    def is_valid_date(self, cell: Optional[str]) -> bool:
        return bool(cell) and self.DATE_PATTERN.match(cell) is not None

    def parse(self, raw_text: str) -> List[ShiftRecord]:
        """
        Parse raw sheet text into shift records.
        Never raises: malformed input of any kind yields an empty list, and
        partial results are discarded rather than returned.
        """
        if not raw_text:
            return []
        try:
            return self._parse_rows(raw_text)
        except Exception as e:
            print(f"Error parsing schedule text: {e}")
            return []

    def _parse_rows(self, raw_text: str) -> List[ShiftRecord]:
        lines = self.LINE_PATTERN.split(self.trim(raw_text))
        if len(lines) < 2:
            return []

        headers = self.tokenize_line(lines[0])
        records = []

        for line in lines[1:]:
            cells = self.tokenize_line(line)
            shift_date = cells[0]

            # Rows without a leading YYYY-MM-DD date carry no shifts at all
            if not self.is_valid_date(shift_date):
                continue

            for col_index in range(1, len(headers)):
                # Short rows: a missing cell is treated the same as an empty one
                employee_name = cells[col_index] if col_index < len(cells) else None
                if self.is_no_shift(employee_name):
                    continue

                store, shift_time = self.decode_header(headers[col_index])
                records.append(ShiftRecord(
                    employee_name=employee_name,
                    date=shift_date,
                    store=store,
                    shift_time=shift_time,
                ))

        return records


_default_parser = ShiftScheduleParser()


def tokenize_line(line: str) -> List[str]:
    return _default_parser.tokenize_line(line)


def decode_header(header: str) -> Tuple[str, str]:
    return _default_parser.decode_header(header)


def is_no_shift(cell: Optional[str]) -> bool:
    return _default_parser.is_no_shift(cell)


def parse_schedule(raw_text: str) -> List[ShiftRecord]:
    """Parse raw sheet text with the default parser settings."""
    return _default_parser.parse(raw_text)


# ============================================================================
# Derived views
# ============================================================================

def employee_names(records: Iterable[ShiftRecord]) -> List[str]:
    """Distinct, non-empty employee names in code-point order."""
    names = {record.employee_name for record in records}
    return sorted(name for name in names if name)


def shift_date_key(record: ShiftRecord) -> calendar_date:
    """Calendar date of a record, read from the leading YYYY-MM-DD of its date cell."""
    try:
        return datetime.strptime(record.date[:10], '%Y-%m-%d').date()
    except ValueError:
        # Pattern-valid but impossible dates (e.g. 2024-02-30) sort last
        return calendar_date.max


def shifts_for_employee(records: Iterable[ShiftRecord],
                        selected_name: Optional[str]) -> List[ShiftRecord]:
    """
    Shifts of one employee, oldest date first.
    Matching is exact and case-sensitive; the sort is stable, so shifts on the
    same date keep their sheet order. No selection gives an empty list.
    """
    if not selected_name:
        return []
    selected = [record for record in records if record.employee_name == selected_name]
    return sorted(selected, key=shift_date_key)


def shift_count(records: Iterable[ShiftRecord]) -> int:
    return sum(1 for _ in records)


def is_night_shift(record: ShiftRecord) -> bool:
    """Night slots are highlighted differently in the shift list."""
    return 'ночь' in record.shift_time.lower()
