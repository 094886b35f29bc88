"""FunnelCache: Summary Store Gateway.

Reads and writes canonical period summaries keyed by
(client_id, platform, summary_type, summary_date). Writes are full-row
upserts: last writer wins, no field-level merge.
"""

from datetime import date
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from funnelcache.config import settings
from funnelcache.core.errors import ClientNotFoundError, SummaryWriteError
from funnelcache.models.client_models import Client
from funnelcache.models.summary_models import (
    PeriodSummary,
    PeriodSummaryRecord,
    Platform,
    SummaryType,
)
from funnelcache.core.logging import get_logger

logger = get_logger("store.summaries")

KEY_COLUMNS = ("client_id", "platform", "summary_type", "summary_date")


def _default_engine() -> Engine:
    from funnelcache.database import engine

    return engine


class SummaryStore:
    """Gateway over the ``campaign_summaries`` table."""

    def __init__(self, engine: Optional[Engine] = None, write_retries: Optional[int] = None):
        self.engine = engine or _default_engine()
        self.write_retries = (
            settings.store_write_retries if write_retries is None else write_retries
        )

    # ── Reads ──

    def get(
        self,
        client_id: str,
        platform: Platform,
        summary_type: SummaryType,
        period_key: date,
    ) -> Optional[PeriodSummary]:
        """Return the stored summary, or None if nothing was collected."""
        with Session(self.engine) as session:
            record = session.exec(
                select(PeriodSummaryRecord).where(
                    PeriodSummaryRecord.client_id == client_id,
                    PeriodSummaryRecord.platform == Platform(platform).value,
                    PeriodSummaryRecord.summary_type == SummaryType(summary_type).value,
                    PeriodSummaryRecord.summary_date == period_key,
                )
            ).first()
            return PeriodSummary.from_record(record) if record else None

    def list_for_client(
        self,
        client_id: str,
        platform: Platform,
        summary_type: SummaryType,
        limit: int = 52,
    ) -> List[PeriodSummary]:
        """Most recent summaries first, for drill-down and export."""
        with Session(self.engine) as session:
            records = session.exec(
                select(PeriodSummaryRecord)
                .where(
                    PeriodSummaryRecord.client_id == client_id,
                    PeriodSummaryRecord.platform == Platform(platform).value,
                    PeriodSummaryRecord.summary_type == SummaryType(summary_type).value,
                )
                .order_by(PeriodSummaryRecord.summary_date.desc())  # type: ignore
                .limit(limit)
            ).all()
            return [PeriodSummary.from_record(r) for r in records]

    # ── Writes ──

    def _upsert_statement(self, values: dict):
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            return None

        stmt = insert(PeriodSummaryRecord.__table__).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=list(KEY_COLUMNS),
            set_={k: stmt.excluded[k] for k in values if k not in KEY_COLUMNS},
        )

    def _write(self, record: PeriodSummaryRecord) -> None:
        values = record.model_dump(exclude={"id"})
        stmt = self._upsert_statement(values)
        if stmt is not None:
            with self.engine.begin() as conn:
                conn.execute(stmt)
            return

        # Dialects without ON CONFLICT: select-then-write in one transaction
        with Session(self.engine) as session:
            existing = session.exec(
                select(PeriodSummaryRecord).where(
                    *(getattr(PeriodSummaryRecord, k) == values[k] for k in KEY_COLUMNS)
                )
            ).first()
            if existing:
                for k, v in values.items():
                    setattr(existing, k, v)
                session.add(existing)
            else:
                session.add(record)
            session.commit()

    def upsert(self, summary: PeriodSummary) -> None:
        """Insert or fully replace the row for the summary's period key.

        Raises:
            SummaryWriteError: the write failed on the first try and on every retry.
        """
        record = summary.to_record()
        last_error: Optional[Exception] = None
        for attempt in range(1, self.write_retries + 2):
            try:
                self._write(record)
                logger.info(
                    f"Stored {summary.summary_type.value} summary {summary.summary_date}",
                    extra={"client_id": summary.client_id, "platform": summary.platform.value},
                )
                return
            except SQLAlchemyError as e:
                last_error = e
                logger.warning(
                    f"Summary upsert failed (attempt {attempt}): {e}",
                    extra={"client_id": summary.client_id, "platform": summary.platform.value},
                )
        raise SummaryWriteError(
            f"Could not store {summary.summary_type.value} summary "
            f"{summary.summary_date} for client {summary.client_id}: {last_error}"
        ) from last_error


class ClientStore:
    """Lookup of configured clients and their ad-account credentials."""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or _default_engine()

    def get_client(self, client_id: str) -> Client:
        with Session(self.engine) as session:
            client = session.get(Client, client_id)
            if client is None:
                raise ClientNotFoundError(client_id)
            session.expunge(client)
            return client

    def list_clients(self) -> List[Client]:
        with Session(self.engine) as session:
            clients = session.exec(select(Client).order_by(Client.id)).all()
            for c in clients:
                session.expunge(c)
            return list(clients)

    def save_client(self, client: Client) -> Client:
        with Session(self.engine) as session:
            merged = session.merge(client)
            session.commit()
            session.refresh(merged)
            session.expunge(merged)
            return merged
