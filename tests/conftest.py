from datetime import date
from decimal import Decimal

import pytest

from burocratin.infrastructure.rates.rate_table import InMemoryRateTable

DEGIRO_REPORT = """\
Cuenta;12345678
Moneda;EUR
Fecha;31-12-2023
Generado;15-01-2024 10:22:31

Cartera
Producto;ISIN;Bolsa;Tipo;Cantidad;Precio;Moneda;Valor
VANGUARD FTSE ALL-WORLD UCITS ETF;IE00B3RBWM25;XET;ETF;20;104,20;EUR;2.084,00
APPLE INC. - COMMON;US0378331005;NDQ;Acción;100;192,53;USD;19.253,00

Transacciones
Fecha;Producto;ISIN;Bolsa;Tipo;Operación;Cantidad;Precio;Moneda;Valor;Comisión
04-03-2023;APPLE INC. - COMMON;US0378331005;NDQ;Acción;Compra;10;150,00;USD;-1.500,00;-0,50
"""

IB_STATEMENT = """\
Statement,Header,Field Name,Field Value
Statement,Data,Period,"January 1, 2023 - December 31, 2023"
Statement,Data,WhenGenerated,"2024-01-20, 08:15:00 EST"
Account Information,Header,Field Name,Field Value
Account Information,Data,Account,U1234567
Account Information,Data,Base Currency,USD
Open Positions,Header,DataDiscriminator,Asset Category,Currency,Symbol,Quantity,Mult,Cost Price,Cost Basis,Close Price,Value,Unrealized P/L,Code
Open Positions,Data,Summary,Stocks,USD,MSFT,30,1,250,7500,376.04,11281.2,3781.2,
Open Positions,Data,Summary,Stocks,USD,AAPL,5,1,150,750,192.53,962.65,212.65,
Open Positions,Total,,Stocks,USD,,,,,8250,,12243.85,3993.85,
Trades,Header,DataDiscriminator,Asset Category,Currency,Symbol,Date/Time,Quantity,T. Price,C. Price,Proceeds,Comm/Fee,Basis,Realized P/L,MTM P/L,Code
Trades,Data,Order,Stocks,USD,MSFT,"2023-02-10, 10:30:00",30,250,251,-7500,-1,7501,0,30,O
Trades,Data,Order,Stocks,USD,AAPL,"2023-11-02, 15:45:12",-5,180,181,900,-1,-750,149,-5,C
Trades,Data,Order,Forex,USD,EUR.USD,"2023-02-09, 09:00:00",-1000,1.07,,1070,-2,,0,,
Dividends,Header,Currency,Date,Description,Amount
Dividends,Data,USD,2023-06-08,MSFT(US5949181045) Cash Dividend USD 0.68 per Share (Ordinary Dividend),20.40
Dividends,Data,Total,,,20.40
Financial Instrument Information,Header,Asset Category,Symbol,Description,Conid,Security ID,Listing Exch,Multiplier,Type,Code
Financial Instrument Information,Data,Stocks,MSFT,MICROSOFT CORP,272093,US5949181045,NASDAQ,1,COMMON,
Financial Instrument Information,Data,Stocks,AAPL,APPLE INC,265598,US0378331005,NASDAQ,1,COMMON,
"""

USD_DATES = (
    date(2023, 2, 10),
    date(2023, 3, 4),
    date(2023, 6, 8),
    date(2023, 11, 2),
    date(2023, 12, 31),
)


@pytest.fixture
def degiro_report() -> bytes:
    return DEGIRO_REPORT.encode("utf-8")


@pytest.fixture
def ib_statement() -> bytes:
    return IB_STATEMENT.encode("utf-8")


@pytest.fixture
def usd_rates() -> InMemoryRateTable:
    return InMemoryRateTable({("USD", on): Decimal("0.9") for on in USD_DATES})
