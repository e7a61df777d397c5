import json
from pathlib import Path

import pytest

from burocratin.domain.errors import LayoutError
from burocratin.infrastructure.layouts.defaults import DEFAULT_LAYOUTS, default_layout
from burocratin.infrastructure.layouts.schema import layout_from_mapping, layout_to_mapping, load_layout, save_layout


def minimal_layout(**overrides):
    raw = {
        "form_id": "720",
        "version": "2024",
        "record_length": 20,
        "header": [{"name": "record_type", "kind": "constant", "width": 1, "value": "1"}],
        "detail": [
            {"name": "record_type", "kind": "constant", "width": 1, "value": "2"},
            {"name": "country", "kind": "alpha", "width": 2, "source": "custody_country"},
            {"name": "value", "kind": "amount", "width": 10, "decimals": 2},
        ],
        "trailer": [{"name": "checksum", "kind": "alpha", "width": 8}],
        "checksum": "adler32",
    }
    raw.update(overrides)
    return raw


def test_layout_from_mapping_uses_defaults():
    layout = layout_from_mapping(minimal_layout())
    assert layout.encoding == "iso-8859-1"
    assert layout.terminator == "\r\n"
    assert layout.detail.fields[1].key == "custody_country"
    assert layout.detail.width == 13


def test_default_layouts_survive_a_json_round_trip(tmp_path: Path):
    for form_id, layout in DEFAULT_LAYOUTS.items():
        path = tmp_path / f"{form_id}.json"
        save_layout(layout, path)
        assert load_layout(path) == layout


def test_record_wider_than_record_length_is_rejected():
    with pytest.raises(LayoutError, match="longer than"):
        layout_from_mapping(minimal_layout(record_length=5))


@pytest.mark.parametrize(
    "field",
    [
        {"name": "x", "kind": "binary", "width": 2},
        {"name": "x", "kind": "alpha", "width": 2, "decimals": 1},
        {"name": "x", "kind": "date", "width": 6},
        {"name": "x", "kind": "constant", "width": 1, "value": "ABC"},
    ],
)
def test_invalid_field_definitions_are_rejected(field):
    with pytest.raises(LayoutError):
        layout_from_mapping(minimal_layout(trailer=[field]))


def test_unknown_checksum_is_rejected():
    with pytest.raises(LayoutError, match="checksum"):
        layout_from_mapping(minimal_layout(checksum="md4"))


def test_missing_key_and_bad_json(tmp_path: Path):
    raw = minimal_layout()
    del raw["detail"]
    with pytest.raises(LayoutError, match="detail"):
        layout_from_mapping(raw)

    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(LayoutError):
        load_layout(path)


def test_layout_to_mapping_is_json_serializable():
    assert json.loads(json.dumps(layout_to_mapping(default_layout("D6"))))["record_length"] == 250
    with pytest.raises(LayoutError):
        default_layout("999")
