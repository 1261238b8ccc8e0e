"""XML persistence for spreadsheet cell contents.

File layout::

    <?xml version='1.0' encoding='utf-8'?>
    <spreadsheet version="default">
      <cell>
        <name>A1</name>
        <contents>=B1+2</contents>
      </cell>
    </spreadsheet>

Element names are matched case-insensitively when reading.  Only the
persisted *contents* text is stored; values are recomputed on load.
"""

from __future__ import annotations

import os
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterable

from gridcalc.errors import SpreadsheetReadWriteError

ROOT_TAG = "spreadsheet"
CELL_TAG = "cell"
NAME_TAG = "name"
CONTENTS_TAG = "contents"

_XML_DECLARATION = "<?xml version='1.0' encoding='utf-8'?>\n"

# Characters outside the XML 1.0 Char production cannot appear in a document.
_NON_XML_CHAR_RE = re.compile("[^\t\n\r\x20-\uD7FF\uE000-\uFFFD\U00010000-\U0010ffff]")


def write_sheet(path: str | os.PathLike[str], version: str, cells: Iterable[tuple[str, str]]) -> None:
    """Write *cells* (name, contents text) to *path* atomically.

    The document is written to a temporary sibling file and then moved into
    place with ``os.replace`` so readers never observe a partial file.

    Raises:
        SpreadsheetReadWriteError: If the file cannot be written.
    """
    path = Path(path)
    _check_writable("version", version, path)
    root = ET.Element(ROOT_TAG, {"version": version})
    for name, contents in cells:
        _check_writable(f"cell {name!r}", name + contents, path)
        cell = ET.SubElement(root, CELL_TAG)
        ET.SubElement(cell, NAME_TAG).text = name
        ET.SubElement(cell, CONTENTS_TAG).text = contents

    ET.indent(root, space="  ")
    # ElementTree leaves "\r" raw in text, and parsers fold raw "\r\n" to "\n".
    document = _XML_DECLARATION + ET.tostring(root, encoding="unicode").replace("\r", "&#13;")

    tmp_path = path.with_name(path.name + ".tmp")
    try:
        tmp_path.write_bytes(document.encode("utf-8"))
        os.replace(tmp_path, path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise SpreadsheetReadWriteError(f"Cannot write spreadsheet: {exc.strerror or exc}", path) from exc


def read_sheet(path: str | os.PathLike[str]) -> tuple[str, list[tuple[str, str]]]:
    """Read a saved spreadsheet.

    Returns:
        ``(version, cells)`` where *cells* is a list of (name, contents text)
        in document order.

    Raises:
        SpreadsheetReadWriteError: If the file is missing, unreadable, not
            well-formed XML, or not structured as a spreadsheet.
    """
    root = _parse_root(Path(path))
    cells: list[tuple[str, str]] = []
    for index, child in enumerate(root, start=1):
        if _tag(child) != CELL_TAG:
            raise SpreadsheetReadWriteError(
                f"Invalid spreadsheet format: unexpected element <{child.tag}>", path
            )
        cells.append(_read_cell(child, index, path))
    return root.attrib["version"], cells


def read_version(path: str | os.PathLike[str]) -> str:
    """Return the version attribute of a saved spreadsheet without reading cells."""
    return _parse_root(Path(path)).attrib["version"]


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


def _check_writable(what: str, text: str, path: Path) -> None:
    match = _NON_XML_CHAR_RE.search(text)
    if match is not None:
        raise SpreadsheetReadWriteError(
            f"Cannot write spreadsheet: {what} contains character "
            f"U+{ord(match.group()):04X}, which XML cannot store",
            path,
        )


def _tag(element: ET.Element) -> str:
    return str(element.tag).lower()


def _parse_root(path: Path) -> ET.Element:
    try:
        root = ET.parse(path).getroot()
    except OSError as exc:
        raise SpreadsheetReadWriteError(f"Cannot read spreadsheet: {exc.strerror or exc}", path) from exc
    except ET.ParseError as exc:
        raise SpreadsheetReadWriteError(f"Malformed spreadsheet XML: {exc}", path) from exc

    if _tag(root) != ROOT_TAG:
        raise SpreadsheetReadWriteError(
            f"Invalid spreadsheet format: root element is <{root.tag}>", path
        )
    if "version" not in root.attrib:
        raise SpreadsheetReadWriteError("Invalid spreadsheet format: missing version", path)
    return root


def _read_cell(cell: ET.Element, index: int, path: object) -> tuple[str, str]:
    fields: dict[str, str] = {}
    for child in cell:
        tag = _tag(child)
        if tag not in (NAME_TAG, CONTENTS_TAG) or tag in fields:
            raise SpreadsheetReadWriteError(
                f"Invalid spreadsheet format: unexpected <{child.tag}> in cell {index}", path
            )
        fields[tag] = child.text or ""

    if NAME_TAG not in fields or CONTENTS_TAG not in fields:
        raise SpreadsheetReadWriteError(
            f"Invalid spreadsheet format: cell {index} needs a name and contents", path
        )
    name = fields[NAME_TAG].strip()
    if not name:
        raise SpreadsheetReadWriteError(
            f"Invalid spreadsheet format: cell {index} has an empty name", path
        )
    return name, fields[CONTENTS_TAG]
