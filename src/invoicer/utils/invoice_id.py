from __future__ import annotations

import random


def generate_invoice_id(
    max_ids: int = 9999999,
    length: int = 7,
    rng: random.Random | None = None,
) -> str:
    """Generate a random numeric invoice ID, zero-padded to *length* digits.

    Example: 0042137
    """
    draw = (rng or random).randrange(max_ids)
    invoice_id = str(draw).zfill(length)
    if len(invoice_id) != length:
        raise ValueError(f"Invoice ID must be {length} chars, got {len(invoice_id)}: {invoice_id}")
    return invoice_id
