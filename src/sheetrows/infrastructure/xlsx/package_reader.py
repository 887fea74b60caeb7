from __future__ import annotations

import posixpath
import zipfile
from pathlib import Path
from typing import IO
from xml.etree import ElementTree as ET

from sheetrows.core.errors import InputFileError, PackageReadError
from sheetrows.core.markup import local_tag
from sheetrows.domain.models.workbook import SheetEntry, StyleFormat


class XlsxPackageReader:
    """Reads the workbook-level parts of an .xlsx package and opens per-sheet streams."""

    WORKBOOK_PART = "xl/workbook.xml"
    WORKBOOK_RELS_PART = "xl/_rels/workbook.xml.rels"
    SHARED_STRINGS_PART = "xl/sharedStrings.xml"
    STYLES_PART = "xl/styles.xml"

    def __init__(self, file_path: Path) -> None:
        self.file_path = file_path
        try:
            self._archive = zipfile.ZipFile(file_path, "r")
        except FileNotFoundError as exc:
            raise InputFileError(f"Not found or not a file: {file_path}") from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise PackageReadError(f"Not a readable spreadsheet package: {file_path} ({exc})") from exc
        self._names = set(self._archive.namelist())
        if self.WORKBOOK_PART not in self._names:
            self._archive.close()
            raise PackageReadError(f"Spreadsheet package has no {self.WORKBOOK_PART}: {file_path}")
        self._workbook_root: ET.Element | None = None
        self._relationships: dict[str, tuple[str, str]] | None = None

    def __enter__(self) -> XlsxPackageReader:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._archive.close()

    def shared_strings(self) -> list[str]:
        part = self._related_part("sharedStrings", self.SHARED_STRINGS_PART)
        if part not in self._names:
            return []
        values: list[str] = []
        try:
            with self._archive.open(part, "r") as stream:
                for _event, elem in ET.iterparse(stream, events=("end",)):
                    if local_tag(elem.tag) != "si":
                        continue
                    values.append(self._string_item_text(elem))
                    elem.clear()
        except ET.ParseError as exc:
            raise PackageReadError(f"Malformed shared strings part {part}: {exc}") from exc
        return values

    def styles(self) -> dict[int, StyleFormat]:
        part = self._related_part("styles", self.STYLES_PART)
        if part not in self._names:
            return {}
        root = self._parse_part(part)
        custom_formats: dict[int, str] = {}
        cell_formats: list[ET.Element] = []
        for node in root:
            tag = local_tag(node.tag)
            if tag == "numFmts":
                for fmt in node:
                    if local_tag(fmt.tag) != "numFmt":
                        continue
                    fmt_id = self._int_attr(fmt, "numFmtId")
                    code = fmt.attrib.get("formatCode")
                    if fmt_id is not None and code:
                        custom_formats[fmt_id] = code
            elif tag == "cellXfs":
                cell_formats = [xf for xf in node if local_tag(xf.tag) == "xf"]

        out: dict[int, StyleFormat] = {}
        for index, xf in enumerate(cell_formats):
            fmt_id = self._int_attr(xf, "numFmtId") or 0
            out[index] = StyleFormat(num_fmt_id=fmt_id, format_code=custom_formats.get(fmt_id))
        return out

    def uses_1904_dates(self) -> bool:
        for node in self._workbook():
            if local_tag(node.tag) == "workbookPr":
                return str(node.attrib.get("date1904") or "").strip().lower() in {"1", "true"}
        return False

    def sheets(self) -> list[SheetEntry]:
        relationships = self._workbook_relationships()
        entries: list[SheetEntry] = []
        index = 0
        for node in self._workbook().iter():
            if local_tag(node.tag) != "sheet":
                continue
            name = str(node.attrib.get("name") or "").strip() or f"Sheet{index + 1}"
            rel_id = ""
            for key in node.attrib.keys():
                if key.endswith("}id") or key == "r:id":
                    rel_id = str(node.attrib.get(key) or "").strip()
                    break
            target = relationships.get(rel_id, ("", ""))[1]
            entries.append(
                SheetEntry(
                    name=name,
                    index=index,
                    part_path=self._resolve_target(target) if target else "",
                    state=str(node.attrib.get("state") or "visible"),
                )
            )
            index += 1
        return entries

    def open_sheet(self, entry: SheetEntry) -> IO[bytes]:
        if not entry.part_path or entry.part_path not in self._names:
            raise PackageReadError(f"Sheet {entry.name!r} has no readable part in {self.file_path}")
        return self._archive.open(entry.part_path, "r")

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    def _workbook(self) -> ET.Element:
        if self._workbook_root is None:
            self._workbook_root = self._parse_part(self.WORKBOOK_PART)
        return self._workbook_root

    def _workbook_relationships(self) -> dict[str, tuple[str, str]]:
        if self._relationships is not None:
            return self._relationships
        rel_map: dict[str, tuple[str, str]] = {}
        if self.WORKBOOK_RELS_PART in self._names:
            for rel in self._parse_part(self.WORKBOOK_RELS_PART):
                if local_tag(rel.tag) != "Relationship":
                    continue
                rel_id = str(rel.attrib.get("Id") or "").strip()
                rel_type = str(rel.attrib.get("Type") or "").strip()
                target = str(rel.attrib.get("Target") or "").strip()
                if rel_id and target:
                    rel_map[rel_id] = (rel_type, target)
        self._relationships = rel_map
        return rel_map

    def _related_part(self, type_suffix: str, default: str) -> str:
        for rel_type, target in self._workbook_relationships().values():
            if rel_type.endswith("/" + type_suffix):
                return self._resolve_target(target)
        return default

    def _parse_part(self, part: str) -> ET.Element:
        try:
            return ET.fromstring(self._archive.read(part))
        except KeyError as exc:
            raise PackageReadError(f"Missing package part {part} in {self.file_path}") from exc
        except ET.ParseError as exc:
            raise PackageReadError(f"Malformed package part {part}: {exc}") from exc

    @staticmethod
    def _resolve_target(target: str) -> str:
        normalized = target.replace("\\", "/").strip()
        if normalized.startswith("/"):
            return posixpath.normpath(normalized.lstrip("/"))
        if normalized.startswith("xl/"):
            return posixpath.normpath(normalized)
        return posixpath.normpath(posixpath.join("xl", normalized))

    @staticmethod
    def _int_attr(node: ET.Element, name: str) -> int | None:
        raw = node.attrib.get(name)
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None

    @staticmethod
    def _string_item_text(item: ET.Element) -> str:
        # Phonetic runs (<rPh>) are reading aids, not part of the value.
        parts: list[str] = []
        for child in item:
            tag = local_tag(child.tag)
            if tag == "t":
                parts.append(child.text or "")
            elif tag == "r":
                parts.extend(run.text or "" for run in child if local_tag(run.tag) == "t")
        return "".join(parts)
