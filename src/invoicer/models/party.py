from __future__ import annotations

from dataclasses import dataclass

from invoicer.utils.validators import validate_country_code, validate_email


def opt_str(d: dict, key: str) -> str | None:
    """Return d[key] as a string, treating missing and blank values as absent."""
    value = d.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class InvoiceAddress:
    street_address: str | None = None
    extra_line: str | None = None
    suburb: str | None = None
    postcode: str | None = None
    state: str | None = None
    country: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> InvoiceAddress:
        country = opt_str(d, "country")
        return cls(
            street_address=opt_str(d, "street_address"),
            extra_line=opt_str(d, "extra_line"),
            suburb=opt_str(d, "suburb"),
            postcode=opt_str(d, "postcode"),
            state=opt_str(d, "state"),
            country=validate_country_code(country.upper()) if country else None,
        )


@dataclass(frozen=True)
class InvoiceParty:
    """Supplier or customer of an invoice."""

    name: str
    abn: str | None = None
    contact_name: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    address: InvoiceAddress | None = None

    @classmethod
    def from_dict(cls, d: dict) -> InvoiceParty:
        """Create a party from a YAML-loaded dict. Only ``name`` is required."""
        address = d.get("address")
        abn = opt_str(d, "abn")
        email = opt_str(d, "contact_email")
        return cls(
            name=str(d["name"]),
            abn=abn.replace(" ", "") if abn else None,
            contact_name=opt_str(d, "contact_name"),
            contact_phone=opt_str(d, "contact_phone"),
            contact_email=validate_email(email) if email else None,
            address=InvoiceAddress.from_dict(address) if address else None,
        )
