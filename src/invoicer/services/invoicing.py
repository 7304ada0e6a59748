from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

from lxml import etree

from invoicer.config import CBC_NS, get_issued_dir, load_party, load_yaml
from invoicer.models.invoice import InvoiceDocument
from invoicer.services.delivery_client import render_invoice, send_invoice
from invoicer.services.invoice_builder import build_invoice
from invoicer.services.invoice_reader import Detail, InvoiceView, project_invoice, text_of
from invoicer.services.xml_parser import parse_ubl, ubl_text

logger = logging.getLogger(__name__)


@dataclass
class PreparedInvoice:
    """A built invoice ready to be saved, rendered or sent."""

    document: InvoiceDocument | None
    xml: str
    invoice_id: str
    source: str = ""


def load_document(path: Path) -> InvoiceDocument:
    """Load an invoice YAML file.

    ``supplier`` and ``customer`` may be inline mappings or the name of a
    party profile under config/parties/.
    """
    data = load_yaml(path) or {}
    for role in ("supplier", "customer"):
        value = data.get(role)
        if value is None:
            raise ValueError(f"{path}: missing '{role}'")
        if isinstance(value, str):
            data[role] = load_party(value)
    return InvoiceDocument.from_dict(data)


def prepare(invoice_path: str | Path, *, today: date | None = None) -> PreparedInvoice:
    """Load an invoice file and build its UBL XML."""
    path = Path(invoice_path)
    document = load_document(path)
    xml = build_invoice(
        document.items,
        document.meta,
        document.supplier,
        document.customer,
        today=today,
    )
    invoice_id = etree.fromstring(xml.encode("utf-8")).findtext(f"{{{CBC_NS}}}ID", default="")
    logger.info("Prepared invoice %s from %s", invoice_id, path)
    return PreparedInvoice(document=document, xml=xml, invoice_id=invoice_id, source=str(path))


def open_invoice(path: str | Path, *, today: date | None = None) -> PreparedInvoice:
    """Open an existing UBL file as-is, or build one from an invoice YAML file.

    Raises UBLParseError when an .xml file is not a UBL Invoice.
    """
    path = Path(path)
    if path.suffix.lower() != ".xml":
        return prepare(path, today=today)
    data = path.read_bytes()
    tree = parse_ubl(data)
    xml = ubl_text(data)
    invoice_id = text_of(tree.get("ID")) or ""
    return PreparedInvoice(document=None, xml=xml, invoice_id=invoice_id, source=str(path))


def save_xml(prepared: PreparedInvoice, out_path: str | Path | None = None) -> str:
    """Write the invoice XML, by default to <data>/issued/invoice_<id>.xml."""
    if out_path is None:
        out = get_issued_dir() / f"invoice_{prepared.invoice_id}.xml"
    else:
        out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(prepared.xml, encoding="utf-8")
    return str(out)


def render(
    prepared: PreparedInvoice,
    output_type: str,
    *,
    style: int = 0,
    language: str = "en",
) -> bytes:
    """Return the invoice in *output_type*. XML needs no round trip to the service."""
    if output_type == "xml":
        return prepared.xml.encode("utf-8")
    return render_invoice(prepared.xml, output_type, style=style, language=language)


def send(
    prepared: PreparedInvoice,
    recipient: str,
    output_type: str = "xml",
    *,
    style: int = 0,
    language: str = "en",
) -> dict[str, Any]:
    return send_invoice(
        recipient,
        prepared.xml,
        output_type=output_type,
        style=style,
        language=language,
    )


def load_view(xml_path: str | Path, detail: Detail = Detail.DEFAULT) -> InvoiceView:
    """Parse a UBL file and project it for display."""
    tree = parse_ubl(Path(xml_path).read_bytes())
    return project_invoice(tree, detail)
