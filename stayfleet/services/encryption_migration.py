"""One-off encryption of personal data stored before field encryption existed.

Scans user and reservation rows and encrypts every non-empty sensitive
column still holding plaintext. Columns that already decrypt under the
configured keys are left alone, so the migration can be re-run safely.
"""

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select

from stayfleet.logging import get_logger
from stayfleet.logging.audit import AuditLogger
from stayfleet.models.errors import CipherError
from stayfleet.models.reservation import Reservation
from stayfleet.models.user import User
from stayfleet.security.cipher import FieldCipher
from stayfleet.storage.database import Database
from stayfleet.storage.db_models import ReservationTable, UserTable

logger = get_logger(__name__)


@dataclass
class TableReport:
    """Per-table outcome of a migration run."""

    table: str
    fields: tuple[str, ...]
    processed: int = 0
    skipped: int = 0


@dataclass
class MigrationReport:
    """Outcome of a migration run."""

    dry_run: bool
    tables: dict[str, TableReport] = field(default_factory=dict)

    @property
    def processed(self) -> int:
        return sum(report.processed for report in self.tables.values())

    @property
    def skipped(self) -> int:
        return sum(report.skipped for report in self.tables.values())


class EncryptionMigration:
    """Encrypts legacy plaintext columns in place."""

    TARGETS: tuple[tuple[Any, tuple[str, ...]], ...] = (
        (UserTable, User.ENCRYPTED_FIELDS),
        (ReservationTable, Reservation.ENCRYPTED_FIELDS),
    )

    def __init__(self, database: Database, cipher: FieldCipher):
        self.database = database
        self.cipher = cipher

    async def run(self, dry_run: bool = False) -> MigrationReport:
        """
        Encrypt every plaintext sensitive column.

        Args:
            dry_run: Count and log the rows that would change without writing

        Raises:
            CipherError: If no encryption key is configured
        """
        if not self.cipher.has_key:
            raise CipherError("Encryption key is not configured")

        report = MigrationReport(dry_run=dry_run)
        logger.info("encryption_migration_started", dry_run=dry_run)

        for table, fields in self.TARGETS:
            report.tables[table.__tablename__] = await self._migrate_table(table, fields, dry_run)

        logger.info(
            "encryption_migration_finished",
            dry_run=dry_run,
            processed=report.processed,
            skipped=report.skipped,
        )
        return report

    async def _migrate_table(
        self, table: Any, fields: tuple[str, ...], dry_run: bool
    ) -> TableReport:
        table_report = TableReport(table=table.__tablename__, fields=fields)

        async with self.database.session() as session:
            result = await session.execute(select(table).order_by(table.id))

            for row in result.scalars().all():
                values = {name: getattr(row, name) for name in fields}
                plaintext = [
                    name for name, value in values.items()
                    if value and not self.cipher.is_encrypted(value)
                ]

                if not plaintext:
                    table_report.skipped += 1
                    continue

                table_report.processed += 1

                if dry_run:
                    logger.info(
                        "row_would_be_encrypted",
                        table=table_report.table,
                        row_id=row.id,
                        fields=plaintext,
                    )
                    continue

                self.cipher.encrypt_fields(values, plaintext)
                for name in plaintext:
                    setattr(row, name, values[name])

                AuditLogger.log_data_encrypted(table_report.table, row.id, plaintext)

        logger.info(
            "encryption_migration_table_done",
            table=table_report.table,
            processed=table_report.processed,
            skipped=table_report.skipped,
        )
        return table_report
