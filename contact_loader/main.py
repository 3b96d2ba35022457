# Project: contact_loader
# Objective: Stream large CSV contact files into PostgreSQL with adaptive, retrying upserts
import argparse
import asyncio
import sys
from typing import List, Optional

import asyncpg

from .setup.config import AppConfig, get_config
from .setup.logging import logger
from .core.importing import BulkUpsertExecutor, ContactImportPipeline
from .core.schemas import ImportResult
from .database.storage import AsyncpgStorage


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Import contacts from a delimited-text file into PostgreSQL.",
        epilog="""
Examples:
  %(prog)s contacts.csv
    Import using settings from the environment / .env

  %(prog)s contacts.csv --create-schema --profile production
    Create the contacts table first, then import with production defaults

  %(prog)s contacts.csv --mode per_record --batch-size 200
    Settle every record individually, starting at 200 rows per batch
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("file", help="Path to the CSV file")
    parser.add_argument("--profile", help="Configuration profile (development, production, testing)")
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument("--create-schema", action="store_true", help="Create the database and contacts table")

    import_group = parser.add_argument_group('Import overrides')
    import_group.add_argument("--mode", choices=["statement", "per_record"], help="Write mode")
    import_group.add_argument("--batch-size", type=int, help="Initial flush threshold")
    import_group.add_argument("--max-retries", type=int, help="Retries per batch for transient failures")
    import_group.add_argument("--delimiter", help="Field delimiter (default: sniffed)")
    return parser


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    overrides = {}
    if args.mode:
        overrides["write_mode"] = args.mode
    if args.batch_size is not None:
        overrides["initial_batch_size"] = args.batch_size
    if args.max_retries is not None:
        overrides["max_retries"] = args.max_retries
    if args.delimiter:
        overrides["delimiter"] = args.delimiter
    if not overrides:
        return config
    # Re-validate so the batch band invariants still hold
    importing = type(config.importing).model_validate({**config.importing.model_dump(), **overrides})
    return config.model_copy(update={"importing": importing})


def create_schema(config: AppConfig) -> bool:
    from .setup.base import init_database
    from .database.models import MainBase

    database = init_database(config.database, MainBase)
    if database is None:
        return False
    database.create_tables()
    logger.info("Contacts schema ensured")
    return True


async def run_import(config: AppConfig, path: str) -> ImportResult:
    try:
        storage = await AsyncpgStorage.connect(config.database)
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
        logger.error(f"Unable to connect to database: {e}")
        return ImportResult(success=False, error="Unable to connect to database")
    try:
        importing = config.importing
        executor = BulkUpsertExecutor(
            storage,
            table=importing.table_name,
            mode=importing.write_mode,
            max_bind_parameters=importing.max_bind_parameters,
            params_per_record=importing.params_per_record,
            concurrency=importing.record_concurrency,
            failure_ratio=importing.chunk_failure_ratio,
        )
        pipeline = ContactImportPipeline(executor, importing)
        return await pipeline.import_file(path)
    finally:
        await storage.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = apply_overrides(get_config(profile=args.profile, env_file=args.env_file), args)

    if args.create_schema and not create_schema(config):
        result = ImportResult(success=False, error="Unable to prepare database schema")
        print(result.model_dump_json(indent=2))
        return 1

    result = asyncio.run(run_import(config, args.file))
    print(result.model_dump_json(indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
