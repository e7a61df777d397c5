"""Application-level DTOs for a declaration run."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Sequence

from burocratin.domain.errors import BurocratinError
from burocratin.domain.models import DeclarationLine, FormDocument, NormalizedStatement
from burocratin.domain.records import BrokerFormat, ParseDiagnostic
from burocratin.domain.services import Consolidation


@dataclass(slots=True, frozen=True)
class StatementInput:
    format: BrokerFormat | str
    data: bytes
    label: str = ""
    as_of: datetime | None = None


@dataclass(slots=True, frozen=True)
class StatementDiagnostic:
    label: str
    diagnostic: ParseDiagnostic

    def __str__(self) -> str:
        return f"{self.label}: {self.diagnostic}"


@dataclass(slots=True, frozen=True)
class FormOutcome:
    """Either the rendered document of one form or the error that stopped it."""

    form_id: str
    document: FormDocument | None = None
    error: BurocratinError | None = None
    consolidation: Consolidation | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.document is not None

    @property
    def content(self) -> bytes:
        return self.document.content if self.document is not None else b""

    @property
    def lines(self) -> tuple[DeclarationLine, ...]:
        return self.document.lines if self.document is not None else ()


@dataclass(slots=True, frozen=True)
class DeclarationRun:
    statements: Sequence[NormalizedStatement]
    diagnostics: tuple[StatementDiagnostic, ...]
    outcomes: Mapping[str, FormOutcome]

    @property
    def failed(self) -> tuple[FormOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes.values() if not outcome.ok)

    @property
    def ok(self) -> bool:
        return not self.failed
