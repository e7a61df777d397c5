"""Error taxonomy shared by every pipeline stage.

Errors are grouped by who has to act on them:

* ``input``: the user's export is wrong and can be fixed by re-exporting.
* ``configuration``: a rate or fiscal parameter is missing for the run.
* ``internal``: a defect in this package; the user should report it.
* ``layout``: a value cannot be placed in the authority's record layout.
"""
from __future__ import annotations

from datetime import date
from typing import Sequence


class BurocratinError(Exception):
    """Base class for every error raised by the pipeline."""

    category = "internal"


class InputError(BurocratinError):
    category = "input"


class UnknownFormatError(InputError):
    def __init__(self, tag: object) -> None:
        super().__init__(f"Unknown broker format: {tag!r}")
        self.tag = tag


class RowError(InputError):
    """A single row could not be parsed."""

    def __init__(self, line: int, field: str | None, reason: str) -> None:
        location = f"line {line}" if field is None else f"line {line}, field {field!r}"
        super().__init__(f"{location}: {reason}")
        self.line = line
        self.field = field
        self.reason = reason


class StatementParseError(InputError):
    """The whole statement was rejected."""

    def __init__(self, message: str, diagnostics: Sequence[object] = ()) -> None:
        super().__init__(message)
        self.diagnostics = tuple(diagnostics)


class ConfigurationError(BurocratinError):
    category = "configuration"


class MissingRateError(ConfigurationError):
    def __init__(self, currency: str, on: date) -> None:
        super().__init__(f"No conversion rate for {currency} on {on.isoformat()}")
        self.currency = currency
        self.date = on


class MissingParameterError(ConfigurationError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Missing fiscal parameter: {key}")
        self.key = key


class InternalInvariantError(BurocratinError):
    category = "internal"


class LayoutError(BurocratinError):
    category = "layout"


class FieldWidthError(LayoutError):
    def __init__(self, field: str, record: int, width: int, value: str) -> None:
        super().__init__(
            f"Value {value!r} for field {field!r} in record {record} exceeds width {width}"
        )
        self.field = field
        self.record = record
        self.width = width
        self.value = value
