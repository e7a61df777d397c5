"""Maps provisional reader rows onto the canonical financial model."""
from __future__ import annotations

import logging
from typing import Mapping

from burocratin.domain.errors import InternalInvariantError
from burocratin.domain.models import NormalizedStatement, Position, Security, Transaction
from burocratin.domain.records import BrokerFormat, ParseResult, Section

from .base import StatementContext, StatementMapping
from .common import custody_account
from .degiro import DegiroMapping
from .interactive_brokers import InteractiveBrokersMapping

LOGGER = logging.getLogger(__name__)

MAPPINGS: Mapping[BrokerFormat, StatementMapping] = {
    BrokerFormat.DEGIRO: DegiroMapping(),
    BrokerFormat.INTERACTIVE_BROKERS: InteractiveBrokersMapping(),
}


def normalize_statement(result: ParseResult, parse_order: int, label: str = "") -> NormalizedStatement:
    """Build the canonical entities for one parsed statement."""
    try:
        mapping = MAPPINGS[result.format]
    except KeyError:
        raise InternalInvariantError(f"No normalizer registered for {result.format!r}") from None

    context = StatementContext(
        account=custody_account(result),
        statement_date=result.meta.statement_date,
        as_of=result.meta.as_of,
        parse_order=parse_order,
    )
    securities: dict[str, Security] = {}
    positions: list[Position] = []
    transactions: list[Transaction] = []
    for row in result.rows:
        candidate = mapping.security(row)
        security = securities.setdefault(candidate.identifier, candidate)
        if row.section is Section.POSITION:
            positions.append(mapping.position(row, security, context))
        else:
            transactions.append(mapping.transaction(row, security, context))

    label = label or f"{result.format.value}:{result.meta.account_id}"
    LOGGER.debug(
        "Normalized %s: %d positions, %d transactions",
        label,
        len(positions),
        len(transactions),
    )
    return NormalizedStatement(
        label=label,
        account=context.account,
        securities=securities,
        positions=tuple(positions),
        transactions=tuple(transactions),
        statement_date=result.meta.statement_date,
        as_of=result.meta.as_of,
        parse_order=parse_order,
    )
