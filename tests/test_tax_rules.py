from datetime import date, datetime
from decimal import Decimal

import pytest

from burocratin.domain.errors import ConfigurationError, MissingParameterError, MissingRateError
from burocratin.domain.models import (
    AssetClass,
    CustodyAccount,
    NormalizedStatement,
    Position,
    Security,
    Transaction,
    TransactionType,
)
from burocratin.domain.parameters import FORM_720, FORM_D6, FormParameters
from burocratin.domain.rules import TaxRuleEngine
from burocratin.domain.services import PortfolioConsolidator
from burocratin.infrastructure.rates.rate_table import InMemoryRateTable

APPLE = Security("US0378331005", "APPLE INC", "US", AssetClass.EQUITY)
VWCE = Security("IE00BK5BQT80", "VANGUARD FTSE ALL-WORLD", "IE", AssetClass.FUND)
DEGIRO = CustodyAccount("Degiro", "1", "NL", "EUR")
IB = CustodyAccount("Interactive Brokers", "U1", "IE", "USD")
LOCAL = CustodyAccount("Banco Local", "ES01", "ES", "EUR")

START = date(2023, 1, 1)
CUTOFF = date(2023, 12, 31)
STAMP = datetime(2024, 1, 10)


def make_position(account, security, value, currency="EUR", quantity="10"):
    return Position(account, security, Decimal(quantity), Decimal(value), currency, CUTOFF, STAMP, 0)


def make_transaction(account, security, kind, on, amount, currency="EUR", quantity="5"):
    return Transaction(account, security, kind, Decimal(quantity), Decimal(amount), currency, on, STAMP, 0)


def make_statement(account, positions=(), transactions=()):
    return NormalizedStatement(
        label=account.broker,
        account=account,
        securities={},
        positions=tuple(positions),
        transactions=tuple(transactions),
        statement_date=CUTOFF,
        as_of=STAMP,
        parse_order=0,
    )


def make_parameters(form_id=FORM_720, threshold="50000", **overrides):
    values = dict(
        form_id=form_id,
        threshold=Decimal(threshold),
        declaration_currency="EUR",
        cutoff=CUTOFF,
        fiscal_year_start=START,
        asset_codes={"equity": "V", "fund": "I"},
        movement_codes={"buy": "A", "sell": "T"} if form_id == FORM_D6 else {},
    )
    values.update(overrides)
    return FormParameters(**values)


def build(form_id, statements, parameters=None, rates=None):
    parameters = parameters or make_parameters(form_id)
    rates = rates if rates is not None else InMemoryRateTable()
    consolidation = PortfolioConsolidator().consolidate(
        statements,
        cutoff=parameters.cutoff,
        fiscal_year_start=parameters.fiscal_year_start,
        currency=parameters.declaration_currency,
        rates=rates,
    )
    return TaxRuleEngine().build_lines(form_id, consolidation, parameters, "ES", rates)


def test_holding_at_exactly_the_threshold_is_declared():
    lines = build(FORM_720, [make_statement(DEGIRO, [make_position(DEGIRO, APPLE, "50000.00")])])

    (line,) = lines
    assert line.values["value"] == Decimal("50000.00")
    assert line.values["custody_country"] == "NL"
    assert line.values["issuer_country"] == "US"
    assert line.values["asset_code"] == "V"
    assert line.values["ownership"] == Decimal("100.00")


def test_one_cent_below_the_threshold_declares_nothing():
    lines = build(FORM_720, [make_statement(DEGIRO, [make_position(DEGIRO, APPLE, "49999.99")])])
    assert lines == ()


def test_threshold_is_tested_on_the_aggregate_of_all_foreign_holdings():
    statements = [
        make_statement(DEGIRO, [make_position(DEGIRO, APPLE, "30000"), make_position(DEGIRO, VWCE, "20000")]),
    ]
    lines = build(FORM_720, statements)
    assert [line.holding.security.identifier for line in lines] == ["IE00BK5BQT80", "US0378331005"]
    assert [line.values["asset_code"] for line in lines] == ["I", "V"]


def test_accounts_in_the_residence_country_are_left_out():
    statements = [
        make_statement(DEGIRO, [make_position(DEGIRO, APPLE, "30000")]),
        make_statement(LOCAL, [make_position(LOCAL, APPLE, "30000")]),
    ]
    assert build(FORM_720, statements) == ()


def test_threshold_uses_converted_amounts():
    statements = [make_statement(IB, [make_position(IB, APPLE, "55000", currency="USD")])]

    below = InMemoryRateTable({("USD", CUTOFF): Decimal("0.9")})
    assert build(FORM_720, statements, rates=below) == ()

    above = InMemoryRateTable({("USD", CUTOFF): Decimal("0.95")})
    (line,) = build(FORM_720, statements, rates=above)
    assert line.amount == Decimal("52250.00")


def test_line_values_round_half_up_once():
    statements = [make_statement(DEGIRO, [make_position(DEGIRO, APPLE, "50000.005")])]
    (line,) = build(FORM_720, statements)
    assert line.amount == Decimal("50000.01")


def test_first_acquisition_is_the_earliest_buy_in_the_account():
    statements = [
        make_statement(
            DEGIRO,
            [make_position(DEGIRO, APPLE, "60000")],
            [
                make_transaction(DEGIRO, APPLE, TransactionType.BUY, date(2023, 9, 1), "1000"),
                make_transaction(DEGIRO, APPLE, TransactionType.BUY, date(2023, 2, 1), "1000"),
                make_transaction(DEGIRO, APPLE, TransactionType.SELL, date(2023, 1, 15), "1000"),
            ],
        )
    ]
    (line,) = build(FORM_720, statements)
    assert line.values["first_acquisition"] == date(2023, 2, 1)


def test_missing_asset_code_names_the_key():
    parameters = make_parameters(asset_codes={"equity": "V"})
    statements = [make_statement(DEGIRO, [make_position(DEGIRO, VWCE, "60000")])]
    with pytest.raises(MissingParameterError) as excinfo:
        build(FORM_720, statements, parameters)
    assert excinfo.value.key == "720.asset_codes.fund"


def test_closed_country_vocabulary_rejects_unknown_country():
    parameters = make_parameters(country_codes={"US": "US"})
    statements = [make_statement(DEGIRO, [make_position(DEGIRO, APPLE, "60000")])]
    with pytest.raises(MissingParameterError) as excinfo:
        build(FORM_720, statements, parameters)
    assert excinfo.value.key == "720.country_codes.NL"


def test_valuation_bracket_follows_the_value():
    parameters = make_parameters(valuation_brackets=((Decimal("0"), "A"), (Decimal("100000"), "B")))
    statements = [
        make_statement(DEGIRO, [make_position(DEGIRO, APPLE, "60000"), make_position(DEGIRO, VWCE, "150000")])
    ]
    brackets = {line.holding.security.identifier: line.values["valuation_bracket"] for line in build(FORM_720, statements, parameters)}
    assert brackets == {"US0378331005": "A", "IE00BK5BQT80": "B"}


def test_d6_declares_movements_of_qualifying_holdings():
    rates = InMemoryRateTable(
        {("USD", CUTOFF): Decimal("0.9"), ("USD", date(2023, 4, 3)): Decimal("0.92")}
    )
    statements = [
        make_statement(
            IB,
            [make_position(IB, APPLE, "2000", currency="USD")],
            [
                make_transaction(IB, APPLE, TransactionType.SELL, date(2023, 4, 3), "1000", currency="USD"),
                make_transaction(IB, APPLE, TransactionType.DIVIDEND, date(2023, 5, 3), "10", currency="USD"),
            ],
        ),
        make_statement(
            LOCAL,
            [make_position(LOCAL, APPLE, "5000")],
            [make_transaction(LOCAL, APPLE, TransactionType.BUY, date(2023, 6, 1), "5000")],
        ),
    ]
    parameters = make_parameters(FORM_D6, threshold="1000")

    (line,) = build(FORM_D6, statements, parameters, rates)
    assert line.values["movement_code"] == "T"
    assert line.values["movement_date"] == date(2023, 4, 3)
    assert line.amount == Decimal("920.00")
    assert line.values["currency"] == "USD"
    assert line.account == IB


def test_d6_holding_below_threshold_has_no_lines():
    statements = [
        make_statement(
            DEGIRO,
            [make_position(DEGIRO, APPLE, "999.99")],
            [make_transaction(DEGIRO, APPLE, TransactionType.BUY, date(2023, 4, 3), "999.99")],
        )
    ]
    assert build(FORM_D6, statements, make_parameters(FORM_D6, threshold="1000")) == ()


def test_d6_movement_without_rate_is_a_configuration_error():
    statements = [
        make_statement(
            IB,
            [make_position(IB, APPLE, "2000")],
            [make_transaction(IB, APPLE, TransactionType.BUY, date(2023, 4, 3), "1000", currency="USD")],
        )
    ]
    with pytest.raises(MissingRateError):
        build(FORM_D6, statements, make_parameters(FORM_D6, threshold="1000"))


def test_unknown_form_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        build("999", [], make_parameters("999"))


def test_snapshot_at_one_broker_and_sale_at_another():
    snapshot_day = date(2023, 12, 30)
    rates = InMemoryRateTable(
        {("USD", snapshot_day): Decimal("1.0"), ("USD", date(2023, 12, 31)): Decimal("1.0")}
    )
    degiro = NormalizedStatement(
        label="broker-a",
        account=DEGIRO,
        securities={},
        positions=(Position(DEGIRO, APPLE, Decimal("100"), Decimal("10000"), "USD", snapshot_day, STAMP, 0),),
        transactions=(),
        statement_date=snapshot_day,
        as_of=STAMP,
        parse_order=0,
    )
    ib = make_statement(
        IB,
        transactions=[
            make_transaction(IB, APPLE, TransactionType.SELL, date(2023, 12, 31), "2000", currency="USD", quantity="20")
        ],
    )

    (asset_line,) = build(FORM_720, [degiro, ib], make_parameters(threshold="10000"), rates)
    assert asset_line.amount == Decimal("10000.00")
    assert asset_line.values["quantity"] == Decimal("100.00")

    (movement,) = build(FORM_D6, [degiro, ib], make_parameters(FORM_D6, threshold="10000"), rates)
    assert movement.values["movement_code"] == "T"
    assert movement.values["quantity"] == Decimal("20.00")
    assert movement.account == IB
