from __future__ import annotations

import zipfile
from collections.abc import Callable
from pathlib import Path
from xml.sax.saxutils import escape

import pytest

MAIN_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"
REL_NS = "http://schemas.openxmlformats.org/officeDocument/2006/relationships"
PKG_REL_NS = "http://schemas.openxmlformats.org/package/2006/relationships"


def _workbook_xml(sheet_names: list[str], date1904: bool) -> str:
    sheets = "".join(
        f'<sheet name="{escape(name)}" sheetId="{i + 1}" r:id="rId{i + 1}"/>'
        for i, name in enumerate(sheet_names)
    )
    pr = '<workbookPr date1904="1"/>' if date1904 else "<workbookPr/>"
    return f'<workbook xmlns="{MAIN_NS}" xmlns:r="{REL_NS}">{pr}<sheets>{sheets}</sheets></workbook>'


def _workbook_rels(sheet_count: int) -> str:
    rels = [
        f'<Relationship Id="rId{i + 1}" '
        f'Type="{REL_NS}/worksheet" Target="worksheets/sheet{i + 1}.xml"/>'
        for i in range(sheet_count)
    ]
    rels.append(f'<Relationship Id="rIdS" Type="{REL_NS}/sharedStrings" Target="sharedStrings.xml"/>')
    rels.append(f'<Relationship Id="rIdT" Type="{REL_NS}/styles" Target="styles.xml"/>')
    return f'<Relationships xmlns="{PKG_REL_NS}">{"".join(rels)}</Relationships>'


def _shared_strings_xml(strings: list[str]) -> str:
    items = "".join(f"<si><t>{escape(value)}</t></si>" for value in strings)
    return f'<sst xmlns="{MAIN_NS}" count="{len(strings)}" uniqueCount="{len(strings)}">{items}</sst>'


def _styles_xml(cell_xfs: list[int], num_formats: dict[int, str]) -> str:
    fmts = "".join(
        f'<numFmt numFmtId="{fmt_id}" formatCode="{escape(code, {chr(34): "&quot;"})}"/>'
        for fmt_id, code in num_formats.items()
    )
    xfs = "".join(f'<xf numFmtId="{fmt_id}" fontId="0" fillId="0" borderId="0"/>' for fmt_id in cell_xfs)
    return (
        f'<styleSheet xmlns="{MAIN_NS}">'
        f'<numFmts count="{len(num_formats)}">{fmts}</numFmts>'
        f'<cellXfs count="{len(cell_xfs)}">{xfs}</cellXfs>'
        "</styleSheet>"
    )


def write_xlsx(
    path: Path,
    sheets: dict[str, str],
    *,
    shared_strings: list[str] | None = None,
    cell_xfs: list[int] | None = None,
    num_formats: dict[int, str] | None = None,
    date1904: bool = False,
    raw_shared_strings: str | None = None,
) -> Path:
    """Write a minimal .xlsx package; each sheet value is the inner markup of <sheetData>."""
    names = list(sheets)
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr("xl/workbook.xml", _workbook_xml(names, date1904))
        archive.writestr("xl/_rels/workbook.xml.rels", _workbook_rels(len(names)))
        archive.writestr(
            "xl/sharedStrings.xml",
            raw_shared_strings if raw_shared_strings is not None else _shared_strings_xml(shared_strings or []),
        )
        archive.writestr("xl/styles.xml", _styles_xml(cell_xfs or [0], num_formats or {}))
        for i, name in enumerate(names):
            archive.writestr(
                f"xl/worksheets/sheet{i + 1}.xml",
                f'<worksheet xmlns="{MAIN_NS}"><sheetData>{sheets[name]}</sheetData></worksheet>',
            )
    return path


@pytest.fixture
def make_xlsx(tmp_path: Path) -> Callable[..., Path]:
    def _make(sheets: dict[str, str], *, name: str = "book.xlsx", **kwargs: object) -> Path:
        return write_xlsx(tmp_path / name, sheets, **kwargs)

    return _make
