"""Read-only lookups against the ARInvoice table.

Used after a run to confirm that the invoice numbers captured from the UI were
actually persisted. SQL Server in real use; any SQLAlchemy engine works.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Column, DateTime, MetaData, String, Table, create_engine, select
from sqlalchemy.engine import URL, Engine

from config import ConfigError, SqlSettings

logger = logging.getLogger(__name__)

metadata = MetaData()

ar_invoice = Table(
    "ARInvoice",
    metadata,
    Column("InvoiceID", String(32), primary_key=True),
    Column("Status", String(64)),
    Column("CreatedDate", DateTime),
    Column("InvoiceType", String(64)),
)


@dataclass(frozen=True)
class InvoiceRecord:
    invoice_number: str
    status: str | None
    invoice_type: str | None
    created: datetime | None


def mssql_url(sql: SqlSettings) -> URL:
    return URL.create(
        "mssql+pyodbc",
        username=sql.user,
        password=sql.password,
        host=sql.server,
        database=sql.database,
        query={
            "driver": sql.driver,
            "Encrypt": "yes" if sql.encrypt else "no",
            "TrustServerCertificate": "yes" if sql.trust_server_certificate else "no",
        },
    )


class InvoiceDatabase:
    def __init__(self, engine: Engine):
        self.engine = engine

    @classmethod
    def from_settings(cls, sql: SqlSettings) -> "InvoiceDatabase":
        if not sql.configured:
            raise ConfigError("SQL_SERVER and SQL_DATABASE must be set for database validation")
        return cls(create_engine(mssql_url(sql), pool_pre_ping=True))

    def lookup(self, invoice_number: str) -> InvoiceRecord | None:
        """Fetch one invoice by number; None when it does not exist.

        Database errors propagate as SQLAlchemyError.
        """
        stmt = (
            select(ar_invoice.c.InvoiceID, ar_invoice.c.Status, ar_invoice.c.CreatedDate, ar_invoice.c.InvoiceType)
            .where(ar_invoice.c.InvoiceID == invoice_number)
            .limit(1)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            logger.info(f"🔍 Invoice {invoice_number} not found in ARInvoice")
            return None
        logger.info(f"✅ Invoice {invoice_number} found in ARInvoice (status={row.Status})")
        return InvoiceRecord(row.InvoiceID, row.Status, row.InvoiceType, row.CreatedDate)

    def dispose(self) -> None:
        self.engine.dispose()
