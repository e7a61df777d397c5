"""Closed registry mapping explicit format tags to statement readers."""
from __future__ import annotations

from typing import Mapping

from burocratin.domain.records import BrokerFormat

from .base import StatementReader
from .degiro import DegiroReader
from .interactive_brokers import InteractiveBrokersReader

READERS: Mapping[BrokerFormat, StatementReader] = {
    BrokerFormat.DEGIRO: DegiroReader(),
    BrokerFormat.INTERACTIVE_BROKERS: InteractiveBrokersReader(),
}


def get_reader(tag: BrokerFormat | str) -> StatementReader:
    """Return the reader for ``tag``; unknown tags raise ``UnknownFormatError``."""
    return READERS[BrokerFormat.from_tag(tag)]
