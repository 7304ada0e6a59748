from __future__ import annotations


class InvalidAmountError(ValueError):
    """A quantity or monetary amount is not a finite number."""

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"{field}: invalid amount {value!r}")
        self.field = field
        self.value = value


class UBLParseError(ValueError):
    """The document is not well-formed XML or not a UBL Invoice."""


class ServiceError(RuntimeError):
    """The render/send service answered with a non-success status."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
