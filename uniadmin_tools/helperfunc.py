#!/usr/bin/env python

"""
uniadmin_tools/helperfunc.py

===============================================================================

    Copyright (C) 2019 Rudolf Cardinal (rudolf@pobox.com).

    This file is part of uniadmin_tools.

    This is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License, or
    (at your option) any later version.

    This software is distributed in the hope that it will be useful,
    but WITHOUT ANY WARRANTY; without even the implied warranty of
    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
    GNU General Public License for more details.

    You should have received a copy of the GNU General Public License
    along with this software. If not, see <https://www.gnu.org/licenses/>.

===============================================================================

Helper functions.

"""

import csv
import logging
from typing import Any, List, Sequence

from openpyxl.cell import Cell
from openpyxl.reader.excel import load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet
from mip import Model
from mip.exceptions import SolutionNotAvailable

from uniadmin_tools.constants import MISSING_VALUES

log = logging.getLogger(__name__)


# =============================================================================
# Reading
# =============================================================================


def is_missing(x: Any) -> bool:
    """
    Is this an empty cell (None, or a string of whitespace)?
    """
    if isinstance(x, str):
        x = x.strip()
    return x in MISSING_VALUES


def is_empty_row(row: Sequence[Cell]) -> bool:
    """
    Is this an empty spreadsheet row?
    """
    return all(is_missing(cell.value) for cell in row)


def read_until_empty_row(ws: Worksheet) -> List[List[Any]]:
    """
    Reads a spreadsheet until the first empty line.
    (Helpful because Excel spreadsheets are sometimes seen as having 1048576
    rows when they don't really).
    """
    rows = []  # type: List[List[Any]]
    for row in ws.iter_rows():
        if is_empty_row(row):
            break
        rows.append([cell.value for cell in row])
    return rows


def read_csv_rows(filename: str) -> List[List[str]]:
    """
    Reads a CSV file into a list of rows, stopping at the first empty row.
    Cells are stripped of surrounding whitespace.
    """
    rows = []  # type: List[List[str]]
    with open(filename, newline="") as f:
        for row in csv.reader(f):
            if all(is_missing(x) for x in row):
                break
            rows.append([x.strip() for x in row])
    return rows


def read_xlsx_rows(filename: str, sheet: str = None) -> List[List[Any]]:
    """
    Reads a worksheet (by default the active one) until the first empty row.
    """
    wb = load_workbook(
        filename,
        read_only=True,
        keep_vba=False,
        data_only=True,
        keep_links=False,
    )
    try:
        ws = wb[sheet] if sheet else wb.active
        return read_until_empty_row(ws)
    finally:
        wb.close()


def read_xlsx_range(ws: Worksheet, cell_range: str) -> List[List[Any]]:
    """
    Reads a rectangular cell range such as ``B2:F30`` into rows of values.
    A single cell (e.g. ``B2``) is returned as a 1x1 block.
    """
    cells = ws[cell_range]
    if isinstance(cells, Cell) or not isinstance(cells, tuple):
        return [[cells.value]]
    if cells and not isinstance(cells[0], tuple):
        # A single row or column comes back as a flat tuple of cells; openpyxl
        # gives a flat tuple for "A1:E1" but a tuple of 1-tuples for "A1:A5".
        return [[c.value for c in cells]]
    return [[c.value for c in row] for row in cells]


def flatten_range(block: List[List[Any]]) -> List[Any]:
    """
    A one-dimensional cell range (a row or a column), as a flat list.
    """
    if len(block) == 1:
        return list(block[0])
    if all(len(row) == 1 for row in block):
        return [row[0] for row in block]
    raise ValueError(
        f"Expected a single row or column of cells, but got "
        f"{len(block)} rows x {max(len(row) for row in block)} columns"
    )


# =============================================================================
# MIP
# =============================================================================


def report_on_model(
    m: Model, loglevel: int = logging.WARNING, solution_only: bool = False
) -> None:
    """
    Shows detail of a MIP model to the log.
    """
    lines = ["Model:", "", "- Variables:", ""]
    try:
        for v in m.vars:
            lines.append(f"{v.name} == {v.x}")
    except SolutionNotAvailable:
        if solution_only:
            raise
        for v in m.vars:
            lines.append(f"{v.name}")
    if not solution_only:
        lines += ["", "- Objective:", ""]
        lines.append(str(m.objective.sense))
        lines.append(str(m.objective))
        lines += ["", "- Constraints:", ""]
        for c in m.constrs:
            lines.append(str(c))
    log.log(loglevel, "\n".join(lines))


# =============================================================================
# Spreadsheet output
# =============================================================================


def bold_cell(cell: Cell) -> None:
    """
    Makes a spreadsheet cell bold.
    """
    cell.font = Font(bold=True)


def bold_first_row(ws: Worksheet) -> None:
    """
    Makes the first row of a worksheet bold (e.g. a heading row).
    """
    for cell in ws[1]:
        bold_cell(cell)


def autosize_openpyxl_column(ws: Worksheet, col_number: int) -> None:
    """
    Automatically resize a single column to its contents. See below.
    """
    col_width = 0
    for row in ws.rows:
        if col_number >= len(row):
            continue
        cell = row[col_number]
        if cell.value:
            text = str(cell.value)
            text_width = len(text)
            col_width = max(col_width, text_width)
    ws.column_dimensions[get_column_letter(col_number + 1)].width = col_width


def autosize_openpyxl_worksheet_columns(ws: Worksheet) -> None:
    """
    Automatically resize column sizes to their contents. See

    - https://stackoverflow.com/questions/13197574/openpyxl-adjust-column-width-size
    """  # noqa
    dims = {}
    for row in ws.rows:
        for cell in row:
            if cell.value:
                text = str(cell.value)
                text_width = len(text)  # the poor approximation
                dims[cell.column_letter] = max(
                    dims.get(cell.column_letter, 0), text_width
                )
    for col, value in dims.items():
        ws.column_dimensions[col].width = value
