"""Serializes declaration lines into the fixed-width files the tax agency accepts."""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Sequence

from burocratin.domain.errors import FieldWidthError, LayoutError
from burocratin.domain.models import DeclarationLine, FormDocument, FormHeader, FormTrailer
from burocratin.infrastructure.layouts.checksums import CHECKSUMS
from burocratin.infrastructure.layouts.schema import FieldSpec, FormLayout, RecordLayout

LOGGER = logging.getLogger(__name__)

_MISSING = object()


class FormRecordGenerator:
    """Renders one form as header, detail and trailer records.

    Every record is padded to the layout's record length and the trailer
    carries the number of detail records plus a checksum over everything
    before it. Any value that does not fit aborts the whole file.
    """

    def __init__(self, layout: FormLayout) -> None:
        self._layout = layout

    @property
    def layout(self) -> FormLayout:
        return self._layout

    def generate(self, lines: Sequence[DeclarationLine], header: FormHeader) -> FormDocument:
        layout = self._layout
        if header.form_id != layout.form_id:
            raise LayoutError(f"Layout for form {layout.form_id} cannot render form {header.form_id}")
        for line in lines:
            if line.form_id != layout.form_id:
                raise LayoutError(f"Line for form {line.form_id} passed to the {layout.form_id} layout")

        header = replace(
            header,
            form_version=header.form_version or layout.version,
            total_amount=sum((line.amount for line in lines), Decimal("0")),
        )
        header_values = {
            "form_id": header.form_id,
            "form_version": header.form_version,
            "fiscal_year": header.fiscal_year,
            "filer_tax_id": header.filer.tax_id,
            "filer_name": header.filer.name,
            "filer_phone": header.filer.phone,
            "record_count": len(lines),
            "total_amount": header.total_amount,
        }

        records = [self._record(layout.header, header_values, 1)]
        for index, line in enumerate(lines, start=2):
            records.append(self._record(layout.detail, {**header_values, **line.values}, index))
        body = b"".join(records)

        checksum = CHECKSUMS[layout.checksum](body)
        trailer = self._record(layout.trailer, {**header_values, "checksum": checksum}, len(lines) + 2)
        LOGGER.debug("Rendered form %s with %d detail records", layout.form_id, len(lines))
        return FormDocument(
            header=header,
            lines=tuple(lines),
            trailer=FormTrailer(record_count=len(lines), checksum=checksum),
            content=body + trailer,
        )

    def _record(self, record: RecordLayout, values: Mapping[str, Any], number: int) -> bytes:
        encoding = self._layout.encoding
        parts = []
        for spec in record.fields:
            value = spec.value if spec.kind == "constant" else values.get(spec.key, _MISSING)
            if value is _MISSING:
                raise LayoutError(
                    f"Field {spec.name!r} in record {number} reads {spec.key!r}, which the {record.name} has no value for"
                )
            parts.append(_render_field(spec, value, number, encoding))
        data = b"".join(parts).ljust(self._layout.record_length, b" ")
        return data + self._layout.terminator.encode(encoding)


def _encode(spec: FieldSpec, text: str, record: int, encoding: str) -> bytes:
    try:
        encoded = text.encode(encoding)
    except UnicodeEncodeError:
        raise LayoutError(
            f"Value {text!r} for field {spec.name!r} in record {record} cannot be written as {encoding}"
        ) from None
    if len(encoded) > spec.width:
        raise FieldWidthError(spec.name, record, spec.width, text)
    return encoded


def _render_field(spec: FieldSpec, value: Any, record: int, encoding: str) -> bytes:
    if spec.kind in ("alpha", "constant"):
        text = "" if value is None else str(value).strip()
        if spec.kind == "alpha":
            text = text.upper()
        return _encode(spec, text, record, encoding).ljust(spec.width, b" ")

    if spec.kind == "numeric":
        number = _as_decimal(spec, 0 if value in (None, "") else value, record)
        if number < 0 or number != number.to_integral_value():
            raise LayoutError(f"Field {spec.name!r} in record {record} needs a non-negative integer, got {value!r}")
        return _encode(spec, str(int(number)), record, encoding).rjust(spec.width, b"0")

    if spec.kind == "amount":
        number = _as_decimal(spec, 0 if value in (None, "") else value, record)
        scaled = number.scaleb(spec.decimals)
        if scaled != scaled.to_integral_value():
            raise LayoutError(
                f"Field {spec.name!r} in record {record} allows {spec.decimals} decimals, got {value}"
            )
        digits = str(abs(int(scaled)))
        if len(digits) > spec.width - 1:
            raise FieldWidthError(spec.name, record, spec.width, str(value))
        sign = b"N" if scaled < 0 else b" "
        return sign + digits.encode("ascii").rjust(spec.width - 1, b"0")

    # date
    if value in (None, ""):
        return b" " * spec.width
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        raise LayoutError(f"Field {spec.name!r} in record {record} needs a date, got {value!r}")
    return _encode(spec, value.strftime("%Y%m%d"), record, encoding)


def _as_decimal(spec: FieldSpec, value: Any, record: int) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise LayoutError(f"Field {spec.name!r} in record {record} needs a number, got {value!r}")
    try:
        return Decimal(value)
    except InvalidOperation:
        raise LayoutError(f"Field {spec.name!r} in record {record} needs a number, got {value!r}") from None
