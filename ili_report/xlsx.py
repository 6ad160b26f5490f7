"""
Minimal xlsx reader (no external engine needed).

Workbooks are zip archives of SpreadsheetML parts; this module reads the
shared-string table, resolves sheet names to their XML part and returns
the cell grid as a DataFrame of strings.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, List, Optional
from zipfile import BadZipFile, ZipFile

import pandas as pd

MAIN_NS = "{http://schemas.openxmlformats.org/spreadsheetml/2006/main}"
REL_NS = "{http://schemas.openxmlformats.org/package/2006/relationships}"
DOC_REL_ID = "{http://schemas.openxmlformats.org/officeDocument/2006/relationships}id"


def _load_shared_strings(zf: ZipFile) -> List[str]:
    """Return list of shared strings used in the workbook."""
    try:
        root = ET.fromstring(zf.read("xl/sharedStrings.xml"))
    except KeyError:
        # Workbook with no shared strings
        return []

    strings: List[str] = []
    for si in root.findall(f"{MAIN_NS}si"):
        parts = [t.text or "" for t in si.iter(f"{MAIN_NS}t")]
        strings.append("".join(parts))
    return strings


def _sheet_paths(zf: ZipFile) -> Dict[str, str]:
    """Map sheet name -> path inside the zip (e.g., xl/worksheets/sheet1.xml)."""
    rel_root = ET.fromstring(zf.read("xl/_rels/workbook.xml.rels"))
    rel_map = {
        rel.attrib["Id"]: rel.attrib["Target"]
        for rel in rel_root.findall(f"{REL_NS}Relationship")
    }

    wb_root = ET.fromstring(zf.read("xl/workbook.xml"))
    result: Dict[str, str] = {}
    for sheet in wb_root.find(f"{MAIN_NS}sheets"):
        target = rel_map[sheet.attrib[DOC_REL_ID]].lstrip("/")
        if not target.startswith("xl/"):
            target = f"xl/{target}"
        result[sheet.attrib["name"]] = target
    return result


def _col_idx(cell_ref: str) -> int:
    """Convert Excel cell reference (A1) into zero-based column index."""
    letters = "".join(ch for ch in cell_ref if ch.isalpha())
    idx = 0
    for ch in letters:
        idx = idx * 26 + (ord(ch.upper()) - ord("A") + 1)
    return idx - 1


def _cell_value(cell: ET.Element, shared_strings: List[str]) -> str:
    cell_type = cell.attrib.get("t")
    if cell_type == "inlineStr":
        return "".join(t.text or "" for t in cell.iter(f"{MAIN_NS}t"))

    v_elem = cell.find(f"{MAIN_NS}v")
    if v_elem is None or v_elem.text is None:
        return ""
    if cell_type == "s":
        return shared_strings[int(v_elem.text)]
    return v_elem.text


def _read_sheet_rows(
    zf: ZipFile, sheet_path: str, shared_strings: List[str]
) -> List[List[str]]:
    """Return sheet rows as lists, aligning columns by cell reference."""
    root = ET.fromstring(zf.read(sheet_path))
    rows: List[List[str]] = []

    for row in root.iter(f"{MAIN_NS}row"):
        cells: Dict[int, str] = {}
        for position, c in enumerate(row.findall(f"{MAIN_NS}c")):
            ref = c.attrib.get("r")
            col_idx = _col_idx(ref) if ref else position
            cells[col_idx] = _cell_value(c, shared_strings)

        if cells:
            row_vals = [""] * (max(cells) + 1)
            for idx, val in cells.items():
                row_vals[idx] = val
            rows.append(row_vals)

    return rows


def read_xlsx(path: str | Path, sheet: Optional[str] = None) -> pd.DataFrame:
    """Read one worksheet into a DataFrame of strings.

    The first non-empty row is used as the header.  ``sheet`` selects a
    worksheet by name; the first worksheet is read when omitted.
    """
    try:
        with ZipFile(path) as zf:
            shared_strings = _load_shared_strings(zf)
            sheet_path_map = _sheet_paths(zf)
            if not sheet_path_map:
                raise ValueError(f"Workbook {path} contains no worksheets")
            if sheet is None:
                sheet_path = next(iter(sheet_path_map.values()))
            elif sheet in sheet_path_map:
                sheet_path = sheet_path_map[sheet]
            else:
                raise KeyError(
                    f"Worksheet {sheet!r} not found; available: {list(sheet_path_map)}"
                )
            rows = _read_sheet_rows(zf, sheet_path, shared_strings)
    except BadZipFile as exc:
        raise ValueError(f"{path} is not an xlsx workbook") from exc

    rows = [row for row in rows if any(str(cell).strip() for cell in row)]
    if not rows:
        return pd.DataFrame()

    header = [str(h).strip() for h in rows[0]]
    width = len(header)
    body = [(row + [""] * width)[:width] for row in rows[1:]]
    return pd.DataFrame(body, columns=header)
