"""Command-line interface for database setup, credits and CSV export.

Provides subcommands for creating the database tables, inspecting or
granting a user's credits, and exporting a user's documents to CSV.
"""

import argparse
import json
import sys
from pathlib import Path

from sqlmodel import Session

from docscan.billing.credits import CreditLedger
from docscan.documents.repository import MAX_PAGE_SIZE, DocumentRepository
from docscan.exporting.csv_export import CsvExporter
from docscan.exporting.schemas import SchemaRepository
from docscan.services.ocr_client import OcrServiceClient
from docscan.storage.database import create_db_engine, init_db
from docscan.storage.models import CreditTier
from docscan.utils.config import AppConfig, load_config
from docscan.utils.errors import DocScanError
from docscan.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def _open_session(config: AppConfig) -> Session:
    engine = create_db_engine(config.database)
    init_db(engine)
    return Session(engine)


def _collect_document_ids(
    repository: DocumentRepository, user_id: str, status: str | None
) -> list[str]:
    """Walk every page of a user's documents and return their ids."""
    ids: list[str] = []
    cursor = None
    while True:
        page = repository.search_documents(
            user_id, status, page_size=MAX_PAGE_SIZE, cursor=cursor
        )
        ids.extend(d.id for d in page.documents)
        if not page.has_more:
            return ids
        cursor = page.next_cursor


def show_credits(
    config: AppConfig,
    user_id: str,
    grant: tuple[str, int] | None = None,
) -> dict[str, int]:
    """Print (and optionally top up) a user's credits.

    Args:
        config: Application configuration.
        user_id: User to inspect.
        grant: Optional ``(tier, amount)`` top-up applied first.

    Returns:
        The user's balances after any top-up.
    """
    with _open_session(config) as session:
        ledger = CreditLedger(session, config.billing)
        if grant is not None:
            tier, amount = grant
            credits = ledger.add_credits(user_id, tier, amount)
        else:
            credits = ledger.get_user_credits(user_id)
        balances = {
            "free_credits": credits.free_credits,
            "paid_tier1_credits": credits.paid_tier1_credits,
            "paid_tier2_credits": credits.paid_tier2_credits,
        }
    print(json.dumps({"user_id": user_id, **balances}, indent=2))
    return balances


def export_user_documents(
    config: AppConfig,
    user_id: str,
    output_csv: Path,
    schema_id: str | None = None,
    status: str | None = None,
    ocr: OcrServiceClient | None = None,
) -> int:
    """Export all of a user's documents (optionally filtered) to CSV.

    Returns:
        Number of exported rows.
    """
    ocr = ocr or OcrServiceClient(config)
    with _open_session(config) as session:
        documents = DocumentRepository(session)
        ids = _collect_document_ids(documents, user_id, status)
        if not ids:
            logger.warning("No documents found for %s", user_id)
            return 0
        exporter = CsvExporter(documents, SchemaRepository(session), ocr)
        export = exporter.export_documents(user_id, ids, schema_id)

    output_csv.parent.mkdir(parents=True, exist_ok=True)
    output_csv.write_text(export.content, encoding="utf-8")
    logger.info("Results written to %s", output_csv)
    print(
        f"Exported {len(export.rows)} documents with schema "
        f"'{export.schema.name}' to {output_csv}"
    )
    return len(export.rows)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="DocScan administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", type=Path, help="Path to config.yaml")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create database tables")

    credits_parser = subparsers.add_parser("credits", help="Show or grant user credits")
    credits_parser.add_argument("user_id", help="User id")
    credits_parser.add_argument(
        "--grant",
        nargs=2,
        metavar=("TIER", "AMOUNT"),
        help="Add AMOUNT credits to TIER (free, tier1, tier2)",
    )

    export_parser = subparsers.add_parser("export", help="Export a user's documents to CSV")
    export_parser.add_argument("user_id", help="User id")
    export_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=Path("export.csv"),
        help="Output CSV file (default: export.csv)",
    )
    export_parser.add_argument("-s", "--schema", dest="schema_id", help="CSV schema id")
    export_parser.add_argument(
        "--status",
        choices=["all", "unfinished", "init", "pending", "processing", "completed", "failed"],
        default="all",
        help="Status filter (default: all)",
    )

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    try:
        if args.command == "init-db":
            init_db(create_db_engine(config.database))
            print(f"Database ready at {config.database.url}")
        elif args.command == "credits":
            grant = None
            if args.grant:
                tier, amount = args.grant
                if tier not in {t.value for t in CreditTier}:
                    print(f"Error: unknown tier {tier}", file=sys.stderr)
                    sys.exit(1)
                grant = (tier, int(amount))
            show_credits(config, args.user_id, grant)
        elif args.command == "export":
            export_user_documents(
                config, args.user_id, args.output, args.schema_id, args.status
            )
        else:
            parser.print_help()
            sys.exit(0)
    except (DocScanError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
