#!/usr/bin/env python3
"""
Reference Management Utility

This script checks and repairs the author/category back references:
- Audit back references against the books collection
- Repair drifted back references
- Show collection statistics
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from utilities.logger import setup_logging
from utilities.config import config
from catalog.database import CatalogDatabase
from catalog.integrity import ReferenceAuditor


def _database() -> CatalogDatabase:
    return CatalogDatabase(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        use_transactions=config.mongodb_use_transactions,
    )


async def audit_references() -> bool:
    """Print every back reference that disagrees with the books. Returns True when consistent."""
    print("\n🔍 AUDITING REFERENCES")
    print("=" * 80)

    database = _database()
    try:
        await database.connect()
        report = await ReferenceAuditor(database).audit()

        if report.is_consistent:
            print("✅ All back references match the books collection")
            return True

        for issue in report.missing:
            print(f"➕ Missing: {issue.collection}/{issue.owner_id} does not list book {issue.book_id}")
        for issue in report.stale:
            print(f"➖ Stale:   {issue.collection}/{issue.owner_id} lists book {issue.book_id}")
        for issue in report.duplicates:
            print(f"🔁 Duplicate: {issue.collection}/{issue.owner_id} lists book {issue.book_id} more than once")
        for dangling in report.dangling:
            print(f"⚠️  Dangling: book {dangling.book_id} {dangling.field} -> {dangling.missing_id}")

        print()
        print(
            f"📊 missing={len(report.missing)} stale={len(report.stale)} "
            f"duplicates={len(report.duplicates)} dangling={len(report.dangling)}"
        )
        print("   Run repair to rebuild the back references.")
        return False
    finally:
        await database.disconnect()


async def repair_references() -> None:
    """Rebuild the back references from the books collection."""
    print("\n🧹 REPAIRING REFERENCES")
    print("=" * 80)

    database = _database()
    try:
        await database.connect()
        result = await ReferenceAuditor(database).repair()

        print(f"🔗 Authors/categories rewritten: {result.owners_rewritten}")
        print(f"📚 Books with unknown categories cleaned: {result.books_cleaned}")
        if result.dangling_authors:
            print(f"\n⚠️  {len(result.dangling_authors)} book(s) point at an author that does not exist:")
            for book_id in result.dangling_authors:
                print(f"   - {book_id}")
            print("   Reassign or delete these books manually.")
        else:
            print("✅ Repair completed successfully")
    finally:
        await database.disconnect()


async def show_statistics() -> None:
    """Show document counts."""
    print("\n📊 CATALOG STATISTICS")
    print("=" * 80)

    database = _database()
    try:
        await database.connect()
        stats = await database.get_stats()

        print(f"👤 Authors: {stats['authors']}")
        print(f"🏷️  Categories: {stats['categories']}")
        print(f"📚 Books: {stats['books']}")
        print(f"🔒 Transactions: {'enabled' if database.transactions_enabled else 'disabled'}")
    finally:
        await database.disconnect()


async def main():
    """Main function."""
    if len(sys.argv) < 2:
        print("Usage: python manage_references.py [audit|repair|stats]")
        print()
        print("Commands:")
        print("  audit   - Report back references that disagree with the books")
        print("  repair  - Rebuild back references from the books")
        print("  stats   - Show document counts")
        sys.exit(1)

    command = sys.argv[1].lower()

    # Setup logging
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    try:
        if command == "audit":
            consistent = await audit_references()
            if not consistent:
                sys.exit(2)
        elif command == "repair":
            await repair_references()
        elif command == "stats":
            await show_statistics()
        else:
            print(f"❌ Unknown command: {command}")
            print("Available commands: audit, repair, stats")
            sys.exit(1)
    except Exception as e:
        print(f"❌ Error running {command}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
