from __future__ import annotations

from decimal import Decimal

from invoicer.services.xml_tree import (
    Element,
    Leaf,
    el,
    prune,
    prune_document,
    to_etree,
    to_xml,
)
from tests.conftest import XML_NS, parse_xml, xml_text


class TestEl:
    def test_values_become_leaves(self):
        node = el("cbc:Name", "Pencils")
        assert node == Element("cbc:Name", (Leaf("Pencils"),), {})

    def test_none_becomes_empty_leaf(self):
        assert el("cbc:Note", None).children == (Leaf(None),)

    def test_decimal_is_normalized(self):
        assert el("cbc:Percent", Decimal("10.0")).children == (Leaf("10"),)
        assert el("cbc:InvoicedQuantity", Decimal("2.50")).children == (Leaf("2.5"),)

    def test_int_is_stringified(self):
        assert el("cbc:ID", 0).children == (Leaf("0"),)

    def test_attributes(self):
        node = el("cbc:PayableAmount", "1.00", currencyID="AUD")
        assert node.attrs == {"currencyID": "AUD"}


class TestPrune:
    def test_empty_leaf_is_removed(self):
        assert prune(Leaf(None)) is None

    def test_blank_leaf_is_removed(self):
        assert prune(Leaf("")) is None
        assert prune(Leaf("  \n")) is None

    def test_blank_text_does_not_keep_element(self):
        assert prune(el("cac:PartyName", el("cbc:Name", ""))) is None

    def test_element_without_content_is_removed(self):
        assert prune(el("cac:Contact", el("cbc:Name", None), el("cbc:Telephone", None))) is None

    def test_attributes_do_not_keep_element(self):
        assert prune(el("cbc:EndpointID", None, schemeID="0151")) is None

    def test_cascades_upwards(self):
        tree = el("cac:Delivery", el("cac:DeliveryParty", el("cac:PartyName", el("cbc:Name", None))))
        assert prune(tree) is None

    def test_keeps_populated_siblings_in_order(self):
        tree = el(
            "cac:Contact",
            el("cbc:Name", "Jane"),
            el("cbc:Telephone", None),
            el("cbc:ElectronicMail", "jane@example.com"),
        )
        assert prune(tree) == el("cac:Contact", el("cbc:Name", "Jane"), el("cbc:ElectronicMail", "jane@example.com"))

    def test_idempotent(self):
        tree = el(
            "Invoice",
            el("cbc:ID", "1"),
            el("cac:InvoicePeriod", el("cbc:StartDate", None), el("cbc:EndDate", "2026-01-31")),
            el("cac:Delivery", el("cbc:ActualDeliveryDate", None)),
        )
        once = prune(tree)
        assert prune(once) == once

    def test_document_root_always_kept(self):
        root = prune_document(el("Invoice", el("cbc:Note", None)))
        assert root == Element("Invoice", (), {})


class TestSerialization:
    def test_namespaces_and_prefixes(self):
        doc = to_etree(el("Invoice", el("cbc:ID", "42"), el("cac:Contact", el("cbc:Name", "Jane"))))
        assert doc.tag == f"{{{XML_NS['inv']}}}Invoice"
        assert xml_text(doc, "cbc:ID") == "42"
        assert xml_text(doc, "cac:Contact/cbc:Name") == "Jane"

    def test_attributes_written(self):
        doc = parse_xml(to_xml(el("Invoice", el("cbc:PayableAmount", "1.00", currencyID="AUD"))))
        assert doc.find("cbc:PayableAmount", namespaces=XML_NS).get("currencyID") == "AUD"

    def test_special_characters_escaped(self):
        xml = to_xml(el("Invoice", el("cbc:Note", "Fish & <chips>")))
        assert "Fish &amp; &lt;chips&gt;" in xml
        assert xml_text(parse_xml(xml), "cbc:Note") == "Fish & <chips>"
