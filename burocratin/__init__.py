"""Turns broker statements into D6 and Modelo 720 declaration files."""
from burocratin.application.dto import DeclarationRun, FormOutcome, StatementInput
from burocratin.application.use_cases import BuildDeclarationsUseCase, DeclarationContext
from burocratin.domain.rules import TaxRuleEngine
from burocratin.domain.services import PortfolioConsolidator
from burocratin.infrastructure.rates.rate_table import InMemoryRateTable, load_rates_csv
from burocratin.infrastructure.storage.parameters_store import config_from_mapping, load_config

__all__ = [
    "BuildDeclarationsUseCase",
    "DeclarationContext",
    "DeclarationRun",
    "FormOutcome",
    "StatementInput",
    "TaxRuleEngine",
    "PortfolioConsolidator",
    "InMemoryRateTable",
    "load_rates_csv",
    "config_from_mapping",
    "load_config",
]
