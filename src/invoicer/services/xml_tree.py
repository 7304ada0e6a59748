"""Small element tree used to assemble UBL documents before serialization.

A document is built as nested ``Element`` nodes whose text content lives in
``Leaf`` nodes. Absent optional values are written as ``Leaf(None)`` and
removed afterwards by ``prune``, so builders can lay out the full schema
without conditionals.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import cast

from lxml import etree

from invoicer.config import NSMAP
from invoicer.utils.formatters import format_number


@dataclass(frozen=True)
class Leaf:
    value: str | None


@dataclass(frozen=True)
class Element:
    name: str
    children: tuple[Leaf | Element, ...] = ()
    attrs: Mapping[str, str] = field(default_factory=dict)


Node = Leaf | Element


def _as_node(child: object) -> Node:
    if isinstance(child, (Leaf, Element)):
        return child
    if child is None:
        return Leaf(None)
    if isinstance(child, Decimal):
        return Leaf(format_number(child))
    return Leaf(str(child))


def el(name: str, *children: object, **attrs: str) -> Element:
    """Build an Element; plain values become Leaf nodes (None stays empty)."""
    return Element(name, tuple(_as_node(c) for c in children), attrs)


def prune(node: Node) -> Node | None:
    """Drop every branch without content.

    A Leaf survives when it has non-blank text; an Element survives when at
    least one child survives. Attributes alone never keep an element.
    """
    if isinstance(node, Leaf):
        return node if node.value is not None and node.value.strip() else None
    kept = tuple(c for c in (prune(child) for child in node.children) if c is not None)
    if not kept:
        return None
    return Element(node.name, kept, node.attrs)


def prune_document(root: Element) -> Element:
    """Prune below *root*; the document element itself is always kept."""
    pruned = prune(root)
    if pruned is None:
        return Element(root.name, (), root.attrs)
    return cast(Element, pruned)


def _qname(name: str) -> str:
    prefix, sep, local = name.partition(":")
    if not sep:
        return f"{{{NSMAP[None]}}}{name}"
    return f"{{{NSMAP[prefix]}}}{local}"


def _fill(target: etree._Element, node: Element) -> None:
    for key, value in node.attrs.items():
        target.set(key, value)
    texts = []
    for child in node.children:
        if isinstance(child, Leaf):
            if child.value is not None:
                texts.append(child.value)
        else:
            _fill(etree.SubElement(target, _qname(child.name)), child)
    if texts:
        target.text = "".join(texts)


def to_etree(root: Element) -> etree._Element:
    """Convert a tree into an lxml element with the UBL namespace map on the root."""
    doc = etree.Element(_qname(root.name), nsmap=NSMAP)  # type: ignore[arg-type]  # lxml stubs don't model None key for default ns
    _fill(doc, root)
    return doc


def to_xml(root: Element) -> str:
    """Serialize a tree to a UTF-8 XML string with declaration."""
    xml_bytes = etree.tostring(
        to_etree(root),
        xml_declaration=True,
        encoding="utf-8",
        pretty_print=True,
    )
    return xml_bytes.decode("utf-8")
