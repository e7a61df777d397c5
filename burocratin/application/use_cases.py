"""Application services orchestrating the statements-to-forms workflow."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import localcontext
from typing import Mapping, Sequence

from burocratin.config import SETTINGS
from burocratin.domain.errors import ConfigurationError, LayoutError, UnknownFormatError
from burocratin.domain.models import FormHeader, NormalizedStatement
from burocratin.domain.parameters import DeclarationConfig, FormParameters
from burocratin.domain.records import BrokerFormat
from burocratin.domain.repositories import RateProvider, StatementParser
from burocratin.domain.rules import TaxRuleEngine
from burocratin.domain.services import Consolidation, PortfolioConsolidator
from burocratin.infrastructure.layouts.defaults import DEFAULT_LAYOUTS
from burocratin.infrastructure.layouts.schema import FormLayout
from burocratin.infrastructure.normalization.statements import normalize_statement
from burocratin.infrastructure.parsing.registry import READERS
from burocratin.presentation.form_writer import FormRecordGenerator

from .dto import DeclarationRun, FormOutcome, StatementDiagnostic, StatementInput

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DeclarationContext:
    config: DeclarationConfig
    rates: RateProvider
    layouts: Mapping[str, FormLayout] = field(default_factory=lambda: dict(DEFAULT_LAYOUTS))
    readers: Mapping[BrokerFormat, StatementParser] = field(default_factory=lambda: dict(READERS))
    consolidator: PortfolioConsolidator = field(
        default_factory=lambda: PortfolioConsolidator(SETTINGS.tolerance_abs)
    )
    rules: TaxRuleEngine = field(default_factory=TaxRuleEngine)


class BuildDeclarationsUseCase:
    """Parses every statement, then builds each configured form independently.

    A form that hits a configuration or layout problem is reported in its
    outcome and the remaining forms are still produced. Input errors in
    strict mode and internal errors propagate.
    """

    def __init__(self, context: DeclarationContext) -> None:
        self._context = context

    def execute(self, inputs: Sequence[StatementInput], forms: Sequence[str] | None = None) -> DeclarationRun:
        config = self._context.config
        form_ids = list(forms) if forms is not None else list(config.forms)
        with localcontext(SETTINGS.decimal_context):
            statements, diagnostics = self._read_statements(inputs)
            consolidations: dict[tuple[object, ...], Consolidation] = {}
            outcomes = {form_id: self._build_form(form_id, statements, consolidations) for form_id in form_ids}

        for outcome in outcomes.values():
            if outcome.error is not None:
                LOGGER.warning("Form %s not generated: %s", outcome.form_id, outcome.error)
        return DeclarationRun(statements=tuple(statements), diagnostics=tuple(diagnostics), outcomes=outcomes)

    def _read_statements(
        self, inputs: Sequence[StatementInput]
    ) -> tuple[list[NormalizedStatement], list[StatementDiagnostic]]:
        strict = self._context.config.strict
        statements: list[NormalizedStatement] = []
        diagnostics: list[StatementDiagnostic] = []
        for parse_order, item in enumerate(inputs):
            broker_format = BrokerFormat.from_tag(item.format)
            reader = self._context.readers.get(broker_format)
            if reader is None:
                raise UnknownFormatError(item.format)
            result = reader.parse(item.data, strict=strict, as_of=item.as_of)
            statement = normalize_statement(result, parse_order, item.label)
            statements.append(statement)
            diagnostics.extend(StatementDiagnostic(statement.label, d) for d in result.diagnostics)
            LOGGER.info(
                "Read %s: %d rows, %d rejected",
                statement.label,
                len(result.rows),
                len(result.diagnostics),
            )
        return statements, diagnostics

    def _build_form(
        self,
        form_id: str,
        statements: Sequence[NormalizedStatement],
        consolidations: dict[tuple[object, ...], Consolidation],
    ) -> FormOutcome:
        context = self._context
        config = context.config
        consolidation = None
        try:
            parameters = config.form(form_id)
            consolidation = self._consolidate(parameters, statements, consolidations)
            lines = context.rules.build_lines(
                form_id, consolidation, parameters, config.residence_country, context.rates
            )
            layout = context.layouts.get(form_id)
            if layout is None:
                raise LayoutError(f"No record layout configured for form {form_id}")
            header = FormHeader(
                form_id=form_id,
                form_version=layout.version,
                fiscal_year=config.fiscal_year,
                filer=config.filer,
            )
            document = FormRecordGenerator(layout).generate(lines, header)
        except (ConfigurationError, LayoutError) as exc:
            return FormOutcome(form_id=form_id, error=exc, consolidation=consolidation)
        LOGGER.info("Form %s: %d lines, total %s", form_id, len(document), document.header.total_amount)
        return FormOutcome(form_id=form_id, document=document, consolidation=consolidation)

    def _consolidate(
        self,
        parameters: FormParameters,
        statements: Sequence[NormalizedStatement],
        cache: dict[tuple[object, ...], Consolidation],
    ) -> Consolidation:
        key = (parameters.cutoff, parameters.fiscal_year_start, parameters.declaration_currency)
        if key not in cache:
            cache[key] = self._context.consolidator.consolidate(
                statements,
                cutoff=parameters.cutoff,
                fiscal_year_start=parameters.fiscal_year_start,
                currency=parameters.declaration_currency,
                rates=self._context.rates,
            )
        return cache[key]
