from __future__ import annotations

from typing import Any

from lxml import etree

from invoicer.services.exceptions import UBLParseError


def _parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
        remove_pis=True,
    )


def _convert(element: etree._Element) -> Any:
    attrs = {f"${etree.QName(k).localname}": v for k, v in element.attrib.items()}
    children = [c for c in element if isinstance(c.tag, str)]
    if not children:
        text = (element.text or "").strip()
        if attrs:
            return {"_text": text, **attrs}
        return text

    node: dict[str, Any] = dict(attrs)
    for child in children:
        key = etree.QName(child).localname
        value = _convert(child)
        if key not in node:
            node[key] = value
        elif isinstance(node[key], list):
            node[key].append(value)
        else:
            node[key] = [node[key], value]
    return node


def _parse_root(xml: str | bytes) -> etree._Element:
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    try:
        root = etree.fromstring(xml, _parser())
    except etree.XMLSyntaxError as exc:
        raise UBLParseError(f"Malformed XML: {exc}") from exc

    root_name = etree.QName(root).localname
    if root_name != "Invoice":
        raise UBLParseError(f"Expected a UBL Invoice document, got <{root_name}>")
    return root


def parse_ubl(xml: str | bytes) -> dict[str, Any]:
    """Parse a UBL Invoice into the generic tree used by the invoice reader.

    Namespace prefixes are dropped. Text-only elements become strings,
    elements with attributes become ``{"_text": ..., "$attr": ...}`` and
    repeated elements become lists. Returns the children of ``<Invoice>``.

    Raises UBLParseError for malformed XML or a non-Invoice root.
    """
    tree = _convert(_parse_root(xml))
    return tree if isinstance(tree, dict) else {}


def ubl_text(xml: bytes) -> str:
    """Decode a UBL Invoice file using its declared encoding.

    The XML declaration is dropped from the returned string. Raises
    UBLParseError like ``parse_ubl``.
    """
    return etree.tostring(_parse_root(xml), encoding="unicode")
