"""ElementTree helpers shared by the descriptor codecs."""
from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Optional, Union


def parse_xml(data: Union[bytes, str]) -> ET.Element:
    """Parse a document and drop namespaces so lookups use plain tag names.

    Raises:
        ValueError: when the document is not well-formed XML.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as exc:
        raise ValueError(f"Malformed XML: {exc}") from exc
    for elem in root.iter():
        if isinstance(elem.tag, str) and "}" in elem.tag:
            elem.tag = elem.tag.split("}", 1)[1]
    return root


def text_of(parent: Optional[ET.Element], path: str) -> Optional[str]:
    """Stripped text of ``parent/path``, or None when absent or blank."""
    if parent is None:
        return None
    elem = parent.find(path)
    if elem is None or elem.text is None:
        return None
    value = elem.text.strip()
    return value or None


def sub_text(parent: ET.Element, tag: str, value: Optional[object]) -> Optional[ET.Element]:
    """Append ``<tag>value</tag>`` when value is not None."""
    if value is None:
        return None
    elem = ET.SubElement(parent, tag)
    elem.text = str(value)
    return elem


def to_bytes(root: ET.Element) -> bytes:
    ET.indent(root, space="  ")
    return ET.tostring(root, encoding="utf-8", xml_declaration=True) + b"\n"
