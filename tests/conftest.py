from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from lxml import etree

from invoicer import config as _config
from invoicer.models.invoice import InvoiceItem, InvoiceMetadata
from invoicer.models.party import InvoiceAddress, InvoiceParty

XML_NS = {
    "inv": _config.UBL_INVOICE_NS,
    "cac": _config.CAC_NS,
    "cbc": _config.CBC_NS,
}

TODAY = date(2026, 10, 19)


def parse_xml(xml: str) -> etree._Element:
    return etree.fromstring(xml.encode("utf-8"))


def xml_text(el: etree._Element, xpath: str) -> str | None:
    """Extract text from an XML element by prefixed path (cac:/cbc:)."""
    found = el.find(xpath, namespaces=XML_NS)
    return found.text if found is not None else None


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Point config/data dirs at an empty tmp dir and reset cached settings."""
    monkeypatch.setenv("INVOICER_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("INVOICER_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("INVOICER_API_TOKEN", raising=False)
    monkeypatch.delenv("INVOICER_SERVICE_URL", raising=False)
    _config.get_settings.cache_clear()
    yield
    _config.get_settings.cache_clear()


# --- Party fixtures ---


@pytest.fixture
def supplier_dict() -> dict:
    return {
        "name": "ACME Supplies Pty Ltd",
        "abn": "51824753556",
        "contact_name": "Jane Citizen",
        "contact_phone": "+61 2 9000 0000",
        "contact_email": "accounts@acme-supplies.com.au",
        "address": {
            "street_address": "100 George Street",
            "extra_line": "Level 4",
            "suburb": "Sydney",
            "postcode": "2000",
            "state": "NSW",
        },
    }


@pytest.fixture
def supplier(supplier_dict: dict) -> InvoiceParty:
    return InvoiceParty.from_dict(supplier_dict)


@pytest.fixture
def customer() -> InvoiceParty:
    return InvoiceParty(
        name="Harbour Cafe",
        abn="47555222000",
        address=InvoiceAddress(
            street_address="1 Circular Quay",
            suburb="Sydney",
            postcode="2000",
            state="NSW",
        ),
    )


@pytest.fixture
def bare_customer() -> InvoiceParty:
    return InvoiceParty(name="Walk-in Customer")


# --- Item / metadata fixtures ---


@pytest.fixture
def pencils() -> InvoiceItem:
    return InvoiceItem(
        description="HB pencils, box of 500",
        name="pencils",
        qty=Decimal("1"),
        unit_price=Decimal("100.00"),
        code="4210",
        seller_id="PEN-500",
    )


@pytest.fixture
def items(pencils: InvoiceItem) -> list[InvoiceItem]:
    return [
        pencils,
        InvoiceItem(
            description="A4 paper, 5 reams",
            name="paper",
            qty=Decimal("3"),
            unit_price=Decimal("12.50"),
            code="4211",
            buyer_id="B-77",
            start_date="2026-10-01",
            end_date="2026-10-31",
        ),
    ]


@pytest.fixture
def meta() -> InvoiceMetadata:
    return InvoiceMetadata()


@pytest.fixture
def fixed_id():
    return lambda: "0000042"


# --- Parsed (read-side) fixtures ---


@pytest.fixture
def party_tree() -> dict:
    return {
        "EndpointID": {"_text": "51824753556", "$schemeID": "0151"},
        "PartyIdentification": [
            {"ID": {"_text": "51824753556", "$schemeID": "0151"}},
            {"ID": {"_text": "GLN-9300000000001", "$schemeID": "0088"}},
        ],
        "PartyName": {"Name": "ACME Supplies"},
        "PostalAddress": {
            "StreetName": "100 George Street",
            "AdditionalStreetName": "Level 4",
            "CityName": "Sydney",
            "PostalZone": "2000",
            "CountrySubentity": "NSW",
            "AddressLine": {"Line": "Attn: Accounts"},
            "Country": {"IdentificationCode": "AU"},
        },
        "PartyLegalEntity": {
            "RegistrationName": "ACME Supplies Pty Ltd",
            "CompanyID": {"_text": "51824753556", "$schemeID": "0151"},
        },
        "Contact": {
            "Name": "Jane Citizen",
            "Telephone": "+61 2 9000 0000",
            "ElectronicMail": "accounts@acme-supplies.com.au",
        },
    }
