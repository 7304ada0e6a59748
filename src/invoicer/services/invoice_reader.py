"""Project a parsed UBL invoice into display groupings.

Input is the generic tree produced by ``parse_ubl`` (or any XML-to-dict
parser using the same conventions). Producers do not always follow the
schema, so every accessor tolerates missing branches and both encodings of
a leaf: ``{"_text": value, "$attr": ...}`` and a bare value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import IntEnum
from typing import Any

from invoicer.config import ABN_SCHEME_ID, COUNTRY_MAP
from invoicer.utils.formatters import NOT_AVAILABLE, format_money


class Detail(IntEnum):
    """How much of a party block to show."""

    MINIMAL = 0
    DEFAULT = 1
    FULL = 2


# --- leaf access ---


@dataclass(frozen=True)
class WrappedAmount:
    value: Decimal | None
    currency: str | None


@dataclass(frozen=True)
class RawAmount:
    value: Decimal | None

    @property
    def currency(self) -> str | None:
        return None


Amount = WrappedAmount | RawAmount


def _get(node: Any, *path: str) -> Any:
    """Walk nested dicts, returning None as soon as a step is missing."""
    cur = node
    for key in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _as_list(node: Any) -> list:
    if node is None:
        return []
    if isinstance(node, list):
        return node
    return [node]


def text_of(node: Any) -> str | None:
    """Text of a leaf in either encoding; None when absent or blank."""
    if isinstance(node, dict):
        node = node.get("_text")
    if node is None or isinstance(node, (dict, list)):
        return None
    text = str(node).strip()
    return text or None


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return d if d.is_finite() else None


def as_amount(node: Any) -> Amount | None:
    """Normalize a monetary leaf. Returns None when the node is absent."""
    if node is None:
        return None
    if isinstance(node, dict):
        currency = node.get("$currencyID")
        return WrappedAmount(_to_decimal(node.get("_text")), str(currency) if currency else None)
    return RawAmount(_to_decimal(node))


def format_currency(amount: Amount | Any, fallback_currency: str | None = None) -> str:
    """Format a monetary leaf for display, e.g. "-$87.21" or "10.10 XYZ".

    Accepts an Amount or a raw tree node. Bare values carry no currency, so
    *fallback_currency* (normally the document currency) is used for them.
    Returns "N/A" when the value is not a number.
    """
    if not isinstance(amount, (WrappedAmount, RawAmount)):
        amount = as_amount(amount)
    if amount is None:
        return NOT_AVAILABLE
    return format_money(amount.value, amount.currency or fallback_currency)


# --- monetary totals ---

MONETARY_TOTAL_ROWS = (
    ("LineExtensionAmount", "Subtotal (items)"),
    ("AllowanceTotalAmount", "Total discount"),
    ("ChargeTotalAmount", "Total additional charges"),
    ("TaxExclusiveAmount", "Subtotal (before tax)"),
    ("TaxInclusiveAmount", "Subtotal (after tax)"),
    ("PrepaidAmount", "Credit"),
    ("PayableRoundingAmount", "Rounding"),
    ("PayableAmount", "Payable amount"),
)


@dataclass(frozen=True)
class TotalRow:
    key: str
    label: str
    amount: str
    emphasis: bool = False


def project_monetary_total(node: Any, fallback_currency: str | None = None) -> list[TotalRow]:
    """Rows of the totals table, in fixed order, for the fields that are present.

    Without a discount or charge total the items subtotal would repeat the
    before-tax subtotal, so it is left out.
    """
    if not isinstance(node, dict):
        return []
    has_adjustments = (
        node.get("AllowanceTotalAmount") is not None or node.get("ChargeTotalAmount") is not None
    )
    rows = []
    for key, label in MONETARY_TOTAL_ROWS:
        if node.get(key) is None:
            continue
        if key == "LineExtensionAmount" and not has_adjustments:
            continue
        rows.append(
            TotalRow(
                key=key,
                label=label,
                amount=format_currency(node[key], fallback_currency),
                emphasis=key == "PayableAmount",
            )
        )
    return rows


# --- tax section ---


@dataclass(frozen=True)
class TaxRow:
    scheme: str
    taxable_amount: str
    percent: str
    tax_amount: str


@dataclass(frozen=True)
class TaxSection:
    rows: tuple[TaxRow, ...]


def project_tax_section(node: Any, fallback_currency: str | None = None) -> TaxSection | None:
    """One row per TaxSubtotal; None when the total has no subtotals at all."""
    subtotals = [s for s in _as_list(_get(node, "TaxSubtotal")) if isinstance(s, dict)]
    if not subtotals:
        return None
    rows = []
    for subtotal in subtotals:
        category = subtotal.get("TaxCategory")
        percent = text_of(_get(category, "Percent"))
        rows.append(
            TaxRow(
                scheme=text_of(_get(category, "TaxScheme", "ID")) or "",
                taxable_amount=format_currency(subtotal.get("TaxableAmount"), fallback_currency),
                percent=f"{percent}%" if percent is not None else "",
                tax_amount=format_currency(subtotal.get("TaxAmount"), fallback_currency),
            )
        )
    return TaxSection(tuple(rows))


# --- parties ---


@dataclass(frozen=True)
class PartyView:
    identifier: str | None
    name: str | None
    country_code: str | None
    contact: tuple[str, ...] = ()
    details: tuple[str, ...] = ()
    identifications: tuple[str, ...] = ()


def _identification_scheme(entry: Any) -> str | None:
    if not isinstance(entry, dict):
        return None
    return entry.get("$schemeID") or _get(entry, "ID", "$schemeID")


def project_party(
    node: Any,
    detail: Detail = Detail.DEFAULT,
    min_detail: Detail = Detail.DEFAULT,
) -> PartyView:
    """Display data for a cac:Party node.

    The ABN is shown as the party identifier, so PartyIdentification entries
    using the ABN scheme are dropped. Address details and the remaining
    identifications are only filled in when *detail* reaches *min_detail*.
    """
    party = node if isinstance(node, dict) else {}
    postal = _get(party, "PostalAddress")

    identifier = text_of(_get(party, "PartyLegalEntity", "CompanyID")) or text_of(
        _get(party, "EndpointID")
    )
    name = text_of(_get(party, "PartyName", "Name")) or text_of(
        _get(party, "PartyLegalEntity", "RegistrationName")
    )
    country_code = text_of(_get(postal, "Country", "IdentificationCode"))

    contact = tuple(
        text
        for text in (
            text_of(_get(party, "Contact", "Name")),
            text_of(_get(party, "Contact", "Telephone")),
            text_of(_get(party, "Contact", "ElectronicMail")),
        )
        if text
    )

    if detail < min_detail:
        return PartyView(identifier, name, country_code, contact)

    details = []
    for key in ("StreetName", "AdditionalStreetName"):
        text = text_of(_get(postal, key))
        if text:
            details.append(text)
    locality = " ".join(
        text
        for text in (
            text_of(_get(postal, "CityName")),
            text_of(_get(postal, "CountrySubentity")),
            text_of(_get(postal, "PostalZone")),
        )
        if text
    )
    if locality:
        details.append(locality)
    if country_code:
        details.append(COUNTRY_MAP.get(country_code, country_code))
    for line in _as_list(_get(postal, "AddressLine")):
        text = text_of(_get(line, "Line"))
        if text:
            details.append(text)

    identifications = tuple(
        text
        for text in (
            text_of(_get(entry, "ID"))
            for entry in _as_list(party.get("PartyIdentification"))
            if _identification_scheme(entry) != ABN_SCHEME_ID
        )
        if text
    )
    return PartyView(identifier, name, country_code, contact, tuple(details), identifications)


# --- whole document ---


@dataclass(frozen=True)
class HeaderView:
    id: str | None
    issue_date: str | None
    due_date: str | None
    currency: str | None
    note: str | None = None
    buyer_reference: str | None = None


@dataclass(frozen=True)
class LineView:
    id: str | None
    name: str | None
    quantity: str | None
    unit_price: str
    line_total: str


@dataclass(frozen=True)
class InvoiceView:
    header: HeaderView
    supplier: PartyView
    customer: PartyView
    lines: tuple[LineView, ...] = ()
    tax: TaxSection | None = None
    totals: tuple[TotalRow, ...] = field(default_factory=tuple)


def project_header(tree: Any) -> HeaderView:
    return HeaderView(
        id=text_of(_get(tree, "ID")),
        issue_date=text_of(_get(tree, "IssueDate")),
        due_date=text_of(_get(tree, "DueDate")),
        currency=text_of(_get(tree, "DocumentCurrencyCode")),
        note=text_of(_get(tree, "Note")),
        buyer_reference=text_of(_get(tree, "BuyerReference")),
    )


def project_line(node: Any, fallback_currency: str | None = None) -> LineView:
    return LineView(
        id=text_of(_get(node, "ID")),
        name=text_of(_get(node, "Item", "Name")) or text_of(_get(node, "Item", "Description")),
        quantity=text_of(_get(node, "InvoicedQuantity")),
        unit_price=format_currency(_get(node, "Price", "PriceAmount"), fallback_currency),
        line_total=format_currency(_get(node, "LineExtensionAmount"), fallback_currency),
    )


def project_invoice(tree: Any, detail: Detail = Detail.DEFAULT) -> InvoiceView:
    """Project every display grouping of a parsed invoice."""
    header = project_header(tree)
    currency = header.currency
    # Only the first TaxTotal carries subtotals in the document currency
    tax_total = next(iter(_as_list(_get(tree, "TaxTotal"))), None)
    return InvoiceView(
        header=header,
        supplier=project_party(_get(tree, "AccountingSupplierParty", "Party"), detail),
        customer=project_party(_get(tree, "AccountingCustomerParty", "Party"), detail),
        lines=tuple(
            project_line(line, currency) for line in _as_list(_get(tree, "InvoiceLine"))
        ),
        tax=project_tax_section(tax_total, currency),
        totals=tuple(project_monetary_total(_get(tree, "LegalMonetaryTotal"), currency)),
    )
