"""Fixed-width record layouts, kept as data so they can change per fiscal year."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from burocratin.domain.errors import LayoutError

from .checksums import CHECKSUMS

FIELD_KINDS = ("alpha", "numeric", "amount", "date", "constant")


@dataclass(frozen=True)
class FieldSpec:
    """One positional field.

    ``source`` names the value the field is filled from and defaults to the
    field name. ``amount`` widths include the sign position.
    """

    name: str
    kind: str
    width: int
    decimals: int = 0
    source: str | None = None
    value: str = ""

    @property
    def key(self) -> str:
        return self.source or self.name


@dataclass(frozen=True)
class RecordLayout:
    name: str
    fields: tuple[FieldSpec, ...]

    @property
    def width(self) -> int:
        return sum(spec.width for spec in self.fields)


@dataclass(frozen=True)
class FormLayout:
    form_id: str
    version: str
    encoding: str
    record_length: int
    header: RecordLayout
    detail: RecordLayout
    trailer: RecordLayout
    terminator: str = "\r\n"
    checksum: str = "sha256"

    def __post_init__(self) -> None:
        if self.checksum not in CHECKSUMS:
            raise LayoutError(f"Layout {self.form_id}: unknown checksum {self.checksum!r}")
        try:
            "".encode(self.encoding)
        except LookupError:
            raise LayoutError(f"Layout {self.form_id}: unknown encoding {self.encoding!r}") from None
        for record in self.records:
            if record.width > self.record_length:
                raise LayoutError(
                    f"Layout {self.form_id}: record {record.name!r} is {record.width} wide, "
                    f"longer than {self.record_length}"
                )
            names = [spec.name for spec in record.fields]
            if len(set(names)) != len(names):
                raise LayoutError(f"Layout {self.form_id}: record {record.name!r} repeats a field name")
            for spec in record.fields:
                _check_field(self.form_id, record.name, spec)

    @property
    def records(self) -> tuple[RecordLayout, ...]:
        return (self.header, self.detail, self.trailer)


def _check_field(form_id: str, record: str, spec: FieldSpec) -> None:
    where = f"Layout {form_id}, record {record!r}, field {spec.name!r}"
    if spec.kind not in FIELD_KINDS:
        raise LayoutError(f"{where}: unknown kind {spec.kind!r}")
    if spec.width <= 0:
        raise LayoutError(f"{where}: width must be positive")
    if spec.decimals < 0 or (spec.decimals and spec.kind != "amount"):
        raise LayoutError(f"{where}: only amount fields carry decimals")
    if spec.kind == "amount" and spec.width < 2:
        raise LayoutError(f"{where}: amount fields need a sign position and a digit")
    if spec.kind == "date" and spec.width != 8:
        raise LayoutError(f"{where}: date fields are 8 wide")
    if spec.kind == "constant" and len(spec.value) > spec.width:
        raise LayoutError(f"{where}: constant {spec.value!r} is wider than {spec.width}")


def _field_from_mapping(raw: Mapping[str, Any]) -> FieldSpec:
    try:
        return FieldSpec(
            name=str(raw["name"]),
            kind=str(raw["kind"]),
            width=int(raw["width"]),
            decimals=int(raw.get("decimals", 0)),
            source=raw.get("source"),
            value=str(raw.get("value", "")),
        )
    except KeyError as exc:
        raise LayoutError(f"Field definition is missing {exc.args[0]!r}: {dict(raw)!r}") from None


def _record_from_mapping(name: str, raw: Any) -> RecordLayout:
    if not isinstance(raw, list):
        raise LayoutError(f"Record {name!r} must be a list of fields")
    return RecordLayout(name=name, fields=tuple(_field_from_mapping(item) for item in raw))


def layout_from_mapping(raw: Mapping[str, Any]) -> FormLayout:
    try:
        return FormLayout(
            form_id=str(raw["form_id"]),
            version=str(raw["version"]),
            encoding=str(raw.get("encoding", "iso-8859-1")),
            record_length=int(raw["record_length"]),
            header=_record_from_mapping("header", raw["header"]),
            detail=_record_from_mapping("detail", raw["detail"]),
            trailer=_record_from_mapping("trailer", raw["trailer"]),
            terminator=str(raw.get("terminator", "\r\n")),
            checksum=str(raw.get("checksum", "sha256")),
        )
    except KeyError as exc:
        raise LayoutError(f"Layout definition is missing {exc.args[0]!r}") from None


def layout_to_mapping(layout: FormLayout) -> dict[str, Any]:
    def record(item: RecordLayout) -> list[dict[str, Any]]:
        fields = []
        for spec in item.fields:
            entry: dict[str, Any] = {"name": spec.name, "kind": spec.kind, "width": spec.width}
            if spec.decimals:
                entry["decimals"] = spec.decimals
            if spec.source:
                entry["source"] = spec.source
            if spec.kind == "constant":
                entry["value"] = spec.value
            fields.append(entry)
        return fields

    return {
        "form_id": layout.form_id,
        "version": layout.version,
        "encoding": layout.encoding,
        "record_length": layout.record_length,
        "terminator": layout.terminator,
        "checksum": layout.checksum,
        "header": record(layout.header),
        "detail": record(layout.detail),
        "trailer": record(layout.trailer),
    }


def load_layout(path: Path) -> FormLayout:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise LayoutError(f"Cannot read layout file {path}: {exc.strerror}") from exc
    except json.JSONDecodeError as exc:
        raise LayoutError(f"Layout file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise LayoutError(f"Layout file {path} must hold a JSON object")
    return layout_from_mapping(data)


def save_layout(layout: FormLayout, path: Path) -> None:
    Path(path).write_text(
        json.dumps(layout_to_mapping(layout), ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
