import hashlib
import zlib
from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from burocratin.domain.errors import FieldWidthError, LayoutError
from burocratin.domain.models import (
    AssetClass,
    ConsolidatedHolding,
    CustodyAccount,
    DeclarationLine,
    FilerIdentity,
    FormHeader,
    Security,
)
from burocratin.domain.parameters import FORM_720, FORM_D6
from burocratin.infrastructure.layouts.defaults import FOREIGN_ASSETS_LAYOUT, FOREIGN_INVESTMENT_LAYOUT
from burocratin.presentation.form_writer import FormRecordGenerator

SECURITY = Security("US0378331005", "Apple Inc", "US", AssetClass.EQUITY)
ACCOUNT = CustodyAccount("Degiro", "12345678", "NL", "EUR")
HOLDING = ConsolidatedHolding(SECURITY, Decimal("50000"), Decimal("100"), ())
FILER = FilerIdentity(tax_id="12345678Z", name="Pérez García, Ana", phone="600000000")


def make_line(value="50000.00", custody_country="NL", **extra):
    values = {
        "security_id": SECURITY.identifier,
        "security_name": SECURITY.name,
        "custody_country": custody_country,
        "issuer_country": "US",
        "asset_code": "V",
        "valuation_bracket": "",
        "broker": ACCOUNT.broker,
        "account_id": ACCOUNT.account_id,
        "quantity": Decimal("100.00"),
        "value": Decimal(value),
        "ownership": Decimal("100.00"),
        "first_acquisition": date(2023, 3, 4),
    }
    values.update(extra)
    return DeclarationLine(FORM_720, HOLDING, ACCOUNT, values, Decimal(value))


def make_header(form_id=FORM_720):
    return FormHeader(form_id=form_id, form_version="", fiscal_year=2023, filer=FILER)


def split_records(content, layout):
    terminator = layout.terminator.encode(layout.encoding)
    records = content.split(terminator)
    assert records[-1] == b""
    return records[:-1]


def test_records_are_fixed_width_with_trailer():
    document = FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate([make_line(), make_line("1234.50")], make_header())

    records = split_records(document.content, FOREIGN_ASSETS_LAYOUT)
    assert len(records) == 4
    assert all(len(record) == 500 for record in records)
    assert records[0].startswith(b"17202023" + b"12345678Z" + "PÉREZ GARCÍA, ANA".encode("iso-8859-1"))
    assert records[1].startswith(b"27202023")
    assert records[3].startswith(b"9720000000002")
    assert document.trailer.record_count == 2
    assert document.header.total_amount == Decimal("51234.50")
    assert document.header.form_version == "1"


def test_amount_fields_carry_sign_and_implied_decimals():
    document = FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate([make_line("-12.30")], make_header())

    detail = split_records(document.content, FOREIGN_ASSETS_LAYOUT)[1]
    offset = sum(spec.width for spec in FOREIGN_ASSETS_LAYOUT.detail.fields[:14])
    assert detail[offset : offset + 16] == b"N000000000001230"


def test_date_field_is_blank_when_absent():
    document = FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate([make_line(first_acquisition=None)], make_header())

    detail = split_records(document.content, FOREIGN_ASSETS_LAYOUT)[1]
    offset = sum(spec.width for spec in FOREIGN_ASSETS_LAYOUT.detail.fields[:12])
    assert detail[offset : offset + 8] == b" " * 8


def test_checksum_covers_everything_before_the_trailer():
    document = FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate([make_line()], make_header())

    records = split_records(document.content, FOREIGN_ASSETS_LAYOUT)
    body = b"".join(record + b"\r\n" for record in records[:-1])
    expected = hashlib.sha256(body).hexdigest().upper()
    assert document.trailer.checksum == expected
    assert expected.encode("ascii") in records[-1]


def test_crc32_layout_checksum():
    line = DeclarationLine(
        FORM_D6,
        HOLDING,
        ACCOUNT,
        {
            "movement_code": "T",
            "movement_date": date(2023, 11, 2),
            "security_id": SECURITY.identifier,
            "security_name": SECURITY.name,
            "issuer_country": "US",
            "custody_country": "IE",
            "asset_code": "A",
            "quantity": Decimal("5.00"),
            "amount": Decimal("828.00"),
            "currency": "USD",
            "broker": "Interactive Brokers",
        },
        Decimal("828.00"),
    )
    document = FormRecordGenerator(FOREIGN_INVESTMENT_LAYOUT).generate([line], make_header(FORM_D6))

    records = split_records(document.content, FOREIGN_INVESTMENT_LAYOUT)
    assert all(len(record) == 250 for record in records)
    body = b"".join(record + b"\r\n" for record in records[:-1])
    assert document.trailer.checksum == f"{zlib.crc32(body):08X}"


def test_generation_is_deterministic():
    generator = FormRecordGenerator(FOREIGN_ASSETS_LAYOUT)
    first = generator.generate([make_line()], make_header())
    second = generator.generate([make_line()], make_header())
    assert first.content == second.content


def test_too_wide_country_code_names_field_and_record():
    lines = [make_line(), make_line(custody_country="NLD")]
    with pytest.raises(FieldWidthError) as excinfo:
        FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate(lines, make_header())
    assert excinfo.value.field == "custody_country"
    assert excinfo.value.record == 3
    assert excinfo.value.width == 2


def test_amount_with_too_many_decimals_is_rejected():
    with pytest.raises(LayoutError, match="quantity"):
        FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate([make_line(quantity=Decimal("1.001"))], make_header())


def test_unencodable_text_is_rejected():
    with pytest.raises(LayoutError, match="security_name"):
        FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate([make_line(security_name="腾讯控股")], make_header())


def test_layout_value_missing_from_line_is_rejected():
    line = make_line()
    values = dict(line.values)
    del values["broker"]
    with pytest.raises(LayoutError, match="broker"):
        FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate([replace(line, values=values)], make_header())


def test_header_for_another_form_is_rejected():
    with pytest.raises(LayoutError):
        FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate([], make_header(FORM_D6))


def test_empty_form_still_has_header_and_trailer():
    document = FormRecordGenerator(FOREIGN_ASSETS_LAYOUT).generate([], make_header())
    assert len(split_records(document.content, FOREIGN_ASSETS_LAYOUT)) == 2
    assert len(document) == 0
