from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal, localcontext

from invoicer.config import (
    ABN_SCHEME_ID,
    CUSTOMIZATION_ID,
    DEFAULT_UNIT_CODE,
    GST_CATEGORY_ID,
    GST_SCHEME_ID,
    INVOICE_TYPE_CODE,
    PROFILE_ID,
    Settings,
    get_settings,
)
from invoicer.models.invoice import InvoiceItem, InvoiceMetadata
from invoicer.models.party import InvoiceAddress, InvoiceParty
from invoicer.services.xml_tree import Element, el, prune_document, to_xml
from invoicer.utils.formatters import format_amount, round2dp
from invoicer.utils.invoice_id import generate_invoice_id
from invoicer.utils.validators import MAX_AMOUNT_DIGITS, validate_amount

logger = logging.getLogger(__name__)

TOTALS_PRECISION = 2 * MAX_AMOUNT_DIGITS + 20


@dataclass(frozen=True)
class InvoiceTotals:
    """Derived amounts. ``pre_tax_total`` is the unrounded item sum, ``subtotal`` its rounding."""

    pre_tax_total: Decimal
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    line_amounts: tuple[Decimal, ...]


@dataclass(frozen=True)
class ResolvedInvoice:
    """Copies of the builder inputs with every default applied."""

    items: tuple[InvoiceItem, ...]
    meta: InvoiceMetadata
    supplier: InvoiceParty
    customer: InvoiceParty
    currency: str


def compute_totals(items: Sequence[InvoiceItem], rate: Decimal) -> InvoiceTotals:
    """Compute line and document totals.

    Each line is rounded on its own; the document totals are derived from the
    unrounded sum and rounded once, so the rounded lines may not add up to the
    rounded subtotal.
    """
    with localcontext() as ctx:
        # Products of two validated amounts need up to 2 * MAX_AMOUNT_DIGITS digits
        ctx.prec = TOTALS_PRECISION
        products = []
        for i, item in enumerate(items):
            qty = validate_amount(item.qty, f"items[{i}].qty")
            unit_price = validate_amount(item.unit_price, f"items[{i}].unit_price")
            products.append(qty * unit_price)

        pre_tax_total = sum(products, Decimal(0))
        line_amounts = tuple(round2dp(p) for p in products)
        totals = InvoiceTotals(
            pre_tax_total=pre_tax_total,
            subtotal=round2dp(pre_tax_total),
            tax_amount=round2dp(pre_tax_total * rate),
            total_amount=round2dp(pre_tax_total * (1 + rate)),
            line_amounts=line_amounts,
        )

        line_sum = sum(line_amounts, Decimal(0))
    if line_sum != totals.subtotal:
        logger.warning(
            "Line amounts sum to %s but subtotal rounds to %s", line_sum, totals.subtotal
        )
    return totals


def _with_country(address: InvoiceAddress | None, country: str) -> InvoiceAddress:
    address = address or InvoiceAddress()
    if address.country:
        return address
    return replace(address, country=country)


def resolve_invoice(
    items: Sequence[InvoiceItem],
    meta: InvoiceMetadata,
    supplier: InvoiceParty,
    customer: InvoiceParty,
    *,
    today: date | None = None,
    id_factory: Callable[[], str] | None = None,
    settings: Settings | None = None,
) -> ResolvedInvoice:
    """Return defaulted copies of the inputs. The inputs themselves are untouched.

    Order matters: the delivery address falls back to the customer address
    after the customer's country has been defaulted.
    """
    settings = settings or get_settings()
    today = today or date.today()

    issue_date = meta.issue_date or today.isoformat()
    due_date = meta.due_date or (
        date.fromisoformat(issue_date) + timedelta(days=settings.invoice_duration_days)
    ).isoformat()

    invoice_id = meta.id
    if not invoice_id:
        if id_factory is None:
            invoice_id = generate_invoice_id(settings.max_ids, settings.id_length)
        else:
            invoice_id = id_factory()

    supplier = replace(supplier, address=_with_country(supplier.address, settings.country))
    customer = replace(customer, address=_with_country(customer.address, settings.country))

    delivery = meta.delivery
    if delivery is not None:
        address = delivery.address if delivery.address is not None else customer.address
        delivery = replace(delivery, address=_with_country(address, settings.country))

    currency = meta.currency_code or settings.currency
    meta = replace(
        meta,
        id=invoice_id,
        issue_date=issue_date,
        due_date=due_date,
        currency_code=currency,
        reference=meta.reference or settings.reference,
        delivery=delivery,
    )
    items = tuple(
        replace(
            item,
            qty=validate_amount(item.qty, f"items[{i}].qty"),
            unit_price=validate_amount(item.unit_price, f"items[{i}].unit_price"),
        )
        for i, item in enumerate(items)
    )
    return ResolvedInvoice(items, meta, supplier, customer, currency)


# --- tree construction ---


def _money(name: str, amount: Decimal, currency: str) -> Element:
    return el(name, format_amount(amount), currencyID=currency)


def _abn(name: str, abn: str | None) -> Element:
    return el(name, abn, schemeID=ABN_SCHEME_ID)


def _period(start: str | None, end: str | None) -> Element:
    return el("cac:InvoicePeriod", el("cbc:StartDate", start), el("cbc:EndDate", end))


def _address(name: str, address: InvoiceAddress | None) -> Element:
    if address is None:
        return el(name)
    return el(
        name,
        el("cbc:StreetName", address.street_address),
        el("cbc:AdditionalStreetName", address.extra_line),
        el("cbc:CityName", address.suburb),
        el("cbc:PostalZone", address.postcode),
        el("cbc:CountrySubentity", address.state),
        el("cac:Country", el("cbc:IdentificationCode", address.country)),
    )


def _party(name: str, party: InvoiceParty) -> Element:
    return el(
        name,
        el(
            "cac:Party",
            _abn("cbc:EndpointID", party.abn),
            el("cac:PartyName", el("cbc:Name", party.name)),
            _address("cac:PostalAddress", party.address),
            el(
                "cac:PartyLegalEntity",
                el("cbc:RegistrationName", party.name),
                _abn("cbc:CompanyID", party.abn),
            ),
            el(
                "cac:Contact",
                el("cbc:Name", party.contact_name),
                el("cbc:Telephone", party.contact_phone),
                el("cbc:ElectronicMail", party.contact_email),
            ),
        ),
    )


def _tax_category(name: str, rate: Decimal) -> Element:
    return el(
        name,
        el("cbc:ID", GST_CATEGORY_ID),
        el("cbc:Percent", rate * 100),
        el("cac:TaxScheme", el("cbc:ID", GST_SCHEME_ID)),
    )


def _delivery(meta: InvoiceMetadata) -> Element:
    delivery = meta.delivery
    if delivery is None:
        return el("cac:Delivery")
    return el(
        "cac:Delivery",
        el("cbc:ActualDeliveryDate", delivery.delivery_date),
        el("cac:DeliveryLocation", _address("cac:Address", delivery.address)),
        el("cac:DeliveryParty", el("cac:PartyName", el("cbc:Name", delivery.name))),
    )


def _invoice_line(
    index: int,
    item: InvoiceItem,
    line_amount: Decimal,
    currency: str,
    rate: Decimal,
) -> Element:
    return el(
        "cac:InvoiceLine",
        el("cbc:ID", index),
        el("cbc:InvoicedQuantity", item.qty, unitCode=DEFAULT_UNIT_CODE),
        _money("cbc:LineExtensionAmount", line_amount, currency),
        el("cbc:AccountingCost", item.code),
        _period(item.start_date, item.end_date),
        el(
            "cac:Item",
            el("cbc:Description", item.description),
            el("cbc:Name", item.name),
            el("cac:BuyersItemIdentification", el("cbc:ID", item.buyer_id)),
            el("cac:SellersItemIdentification", el("cbc:ID", item.seller_id)),
            _tax_category("cac:ClassifiedTaxCategory", rate),
        ),
        el("cac:Price", _money("cbc:PriceAmount", item.unit_price, currency)),
    )


def build_invoice_tree(
    items: Sequence[InvoiceItem],
    meta: InvoiceMetadata,
    supplier: InvoiceParty,
    customer: InvoiceParty,
    *,
    today: date | None = None,
    id_factory: Callable[[], str] | None = None,
    settings: Settings | None = None,
) -> Element:
    """Build the pruned UBL Invoice tree, elements in schema order."""
    settings = settings or get_settings()
    resolved = resolve_invoice(
        items,
        meta,
        supplier,
        customer,
        today=today,
        id_factory=id_factory,
        settings=settings,
    )
    rate = settings.gst_rate
    totals = compute_totals(resolved.items, rate)
    meta = resolved.meta
    currency = resolved.currency
    subtotal = totals.subtotal

    root = el(
        "Invoice",
        el("cbc:CustomizationID", CUSTOMIZATION_ID),
        el("cbc:ProfileID", PROFILE_ID),
        el("cbc:ID", meta.id),
        el("cbc:IssueDate", meta.issue_date),
        el("cbc:DueDate", meta.due_date),
        el("cbc:InvoiceTypeCode", INVOICE_TYPE_CODE),
        el("cbc:Note", meta.note),
        el("cbc:DocumentCurrencyCode", currency),
        el("cbc:BuyerReference", meta.reference),
        _period(meta.start_date, meta.end_date),
        _party("cac:AccountingSupplierParty", resolved.supplier),
        _party("cac:AccountingCustomerParty", resolved.customer),
        _delivery(meta),
        el(
            "cac:TaxTotal",
            _money("cbc:TaxAmount", totals.tax_amount, currency),
            el(
                "cac:TaxSubtotal",
                _money("cbc:TaxableAmount", subtotal, currency),
                _money("cbc:TaxAmount", totals.tax_amount, currency),
                _tax_category("cac:TaxCategory", rate),
            ),
        ),
        el(
            "cac:LegalMonetaryTotal",
            _money("cbc:LineExtensionAmount", subtotal, currency),
            _money("cbc:TaxExclusiveAmount", subtotal, currency),
            _money("cbc:TaxInclusiveAmount", totals.total_amount, currency),
            _money("cbc:PayableAmount", totals.total_amount, currency),
        ),
        *(
            _invoice_line(i, item, amount, currency, rate)
            for i, (item, amount) in enumerate(zip(resolved.items, totals.line_amounts))
        ),
    )
    logger.debug("Built invoice %s with %d lines", meta.id, len(resolved.items))
    return prune_document(root)


def build_invoice(
    items: Sequence[InvoiceItem],
    meta: InvoiceMetadata,
    supplier: InvoiceParty,
    customer: InvoiceParty,
    *,
    today: date | None = None,
    id_factory: Callable[[], str] | None = None,
    settings: Settings | None = None,
) -> str:
    """Turn sparse invoice data into a UBL XML string, filling in defaults.

    Raises InvalidAmountError when a quantity or unit price is not a finite number.
    """
    tree = build_invoice_tree(
        items,
        meta,
        supplier,
        customer,
        today=today,
        id_factory=id_factory,
        settings=settings,
    )
    return to_xml(tree)
