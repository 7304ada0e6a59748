"""Client for the external rendering and transmission service.

The service turns UBL XML into PDF, HTML or JSON and forwards invoices to a
recipient by email or SMS. Authentication is a bearer token (see
``config.get_api_token``).
"""

from __future__ import annotations

import logging
from typing import Any

from requests import post

from invoicer.config import (
    OUTPUT_TYPES,
    RENDER_TIMEOUT,
    RENDER_TYPES,
    SEND_TIMEOUT,
    SUPPORTED_LANGUAGES,
    get_api_token,
    get_service_url,
)
from invoicer.services.exceptions import ServiceError
from invoicer.services.http_retry import (
    RENDER_READ,
    SEND_SUBMIT,
    RetryableHTTPError,
    RetryPolicy,
    retry_call,
)
from invoicer.utils.validators import classify_recipient

logger = logging.getLogger(__name__)


def _auth_headers(**extra: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {get_api_token()}", **extra}


def _check_response(resp: Any, action: str, policy: RetryPolicy) -> None:
    if resp.ok:
        return
    body = resp.text[:500] if resp.text else ""
    message = f"Service {action} error ({resp.status_code}): {body}"
    if policy.retries_status(resp.status_code):
        raise RetryableHTTPError(message, status_code=resp.status_code)
    raise ServiceError(message, status_code=resp.status_code, body=body)


def render_invoice(
    ubl: str,
    output_type: str,
    *,
    style: int = 0,
    language: str = "en",
) -> bytes:
    """Render UBL XML to pdf, html or json and return the rendered bytes."""
    if output_type not in RENDER_TYPES:
        raise ValueError(f"Cannot render to '{output_type}', expected one of {RENDER_TYPES}")
    if language not in SUPPORTED_LANGUAGES:
        raise ValueError(f"Unsupported language: '{language}'")
    if style < 0:
        raise ValueError("style must not be negative")

    url = f"{get_service_url()}/render/{output_type}"
    headers = _auth_headers(**{"Content-Type": "application/xml"})

    def _do_post():
        resp = post(
            url,
            params={"style": style, "language": language},
            data=ubl.encode("utf-8"),
            headers=headers,
            timeout=RENDER_TIMEOUT,
        )
        _check_response(resp, f"render {output_type}", RENDER_READ)
        return resp.content

    content = retry_call(_do_post, RENDER_READ)
    logger.debug("Rendered invoice to %s (%d bytes)", output_type, len(content))
    return content


def send_invoice(
    recipient: str,
    ubl: str,
    *,
    output_type: str = "xml",
    content: bytes | None = None,
    style: int = 0,
    language: str = "en",
) -> dict:
    """Send an invoice to an email address or phone number.

    XML is forwarded as-is. For other output types *content* is sent when
    given, otherwise the invoice is rendered first.
    """
    if output_type not in OUTPUT_TYPES:
        raise ValueError(f"Unknown output type '{output_type}', expected one of {OUTPUT_TYPES}")
    send_type = classify_recipient(recipient)
    recipient = recipient.strip()
    base = get_service_url()

    if output_type == "xml":
        url = f"{base}/send/external"
        kwargs: dict[str, Any] = {
            "json": {"recipient": recipient, "type": send_type, "ubl": ubl},
        }
    else:
        if content is None:
            content = render_invoice(ubl, output_type, style=style, language=language)
        url = f"{base}/send"
        kwargs = {
            "data": {"recipient": recipient, "type": send_type, "format": output_type},
            "files": {"file": (f"invoice.{output_type}", content)},
        }

    def _do_post():
        return post(url, headers=_auth_headers(), timeout=SEND_TIMEOUT, **kwargs)

    resp = retry_call(_do_post, SEND_SUBMIT)
    _check_response(resp, "send", SEND_SUBMIT)
    logger.info("Sent %s invoice to %s via %s", output_type, recipient, send_type)
    return resp.json() if resp.content else {}
