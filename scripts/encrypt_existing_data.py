"""Encrypt personal data stored in plaintext before field encryption existed.

Usage:
    python scripts/encrypt_existing_data.py [--dry-run]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from stayfleet.config import load_settings
from stayfleet.logging import get_logger, setup_logging
from stayfleet.models.errors import BookingError
from stayfleet.security.cipher import FieldCipher
from stayfleet.services.encryption_migration import EncryptionMigration
from stayfleet.storage.database import Database


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report the rows that would be encrypted without writing",
    )
    return parser.parse_args(argv)


async def main(dry_run: bool) -> int:
    """Run the migration and print a summary."""
    settings = load_settings()
    setup_logging(settings.log_level)
    logger = get_logger(__name__)

    database = Database(settings)
    await database.connect()

    try:
        migration = EncryptionMigration(database, FieldCipher.from_settings(settings))
        report = await migration.run(dry_run=dry_run)
    except BookingError as e:
        logger.error("encryption_migration_failed", error=e.message)
        return 1
    finally:
        await database.disconnect()

    mode = "DRY RUN: " if report.dry_run else ""
    for table in report.tables.values():
        print(
            f"{mode}{table.table}: {table.processed} encrypted, {table.skipped} skipped "
            f"({', '.join(table.fields)})"
        )
    print(f"{mode}total: {report.processed} encrypted, {report.skipped} skipped")
    return 0


if __name__ == "__main__":
    args = parse_args()
    sys.exit(asyncio.run(main(dry_run=args.dry_run)))
