from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from invoicer.models.party import InvoiceAddress, InvoiceParty, opt_str
from invoicer.utils.validators import validate_amount, validate_currency_code, validate_date


def _opt_date(d: dict, key: str) -> str | None:
    value = opt_str(d, key)
    return validate_date(value) if value is not None else None


@dataclass(frozen=True)
class InvoiceItem:
    description: str | None
    name: str | None
    qty: Decimal
    unit_price: Decimal
    code: str | None = None
    buyer_id: str | None = None
    seller_id: str | None = None
    start_date: str | None = None  # YYYY-MM-DD
    end_date: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> InvoiceItem:
        """Create an item from a YAML/CSV row. Raises InvalidAmountError on bad numbers."""
        return cls(
            description=opt_str(d, "description"),
            name=opt_str(d, "name"),
            qty=validate_amount(d.get("qty"), "qty"),
            unit_price=validate_amount(d.get("unit_price"), "unit_price"),
            code=opt_str(d, "code"),
            buyer_id=opt_str(d, "buyer_id"),
            seller_id=opt_str(d, "seller_id"),
            start_date=_opt_date(d, "start_date"),
            end_date=_opt_date(d, "end_date"),
        )


@dataclass(frozen=True)
class Delivery:
    delivery_date: str | None = None
    address: InvoiceAddress | None = None
    name: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> Delivery:
        address = d.get("address")
        return cls(
            delivery_date=_opt_date(d, "delivery_date"),
            address=InvoiceAddress.from_dict(address) if address else None,
            name=opt_str(d, "name"),
        )


@dataclass(frozen=True)
class InvoiceMetadata:
    """Invoice-level fields. Anything left as None is defaulted at build time."""

    id: str | None = None
    issue_date: str | None = None
    due_date: str | None = None
    note: str | None = None
    currency_code: str | None = None
    reference: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    delivery: Delivery | None = None

    @classmethod
    def from_dict(cls, d: dict) -> InvoiceMetadata:
        currency = opt_str(d, "currency_code")
        delivery = d.get("delivery")
        return cls(
            id=opt_str(d, "id"),
            issue_date=_opt_date(d, "issue_date"),
            due_date=_opt_date(d, "due_date"),
            note=opt_str(d, "note"),
            currency_code=validate_currency_code(currency.upper()) if currency else None,
            reference=opt_str(d, "reference"),
            start_date=_opt_date(d, "start_date"),
            end_date=_opt_date(d, "end_date"),
            # An empty mapping still asks for a delivery block
            delivery=Delivery.from_dict(delivery) if delivery is not None else None,
        )


@dataclass(frozen=True)
class InvoiceDocument:
    """Everything the builder needs: items, metadata and both parties."""

    supplier: InvoiceParty
    customer: InvoiceParty
    items: tuple[InvoiceItem, ...] = ()
    meta: InvoiceMetadata = field(default_factory=InvoiceMetadata)

    @classmethod
    def from_dict(cls, d: dict) -> InvoiceDocument:
        """Create a document from a YAML invoice file whose parties are already inline."""
        return cls(
            supplier=InvoiceParty.from_dict(d["supplier"]),
            customer=InvoiceParty.from_dict(d["customer"]),
            items=tuple(InvoiceItem.from_dict(item) for item in d.get("items") or []),
            meta=InvoiceMetadata.from_dict(d.get("meta") or {}),
        )
