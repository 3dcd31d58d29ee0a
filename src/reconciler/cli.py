"""Command-line entry point: ``reconciler migrate``, ``classify`` and ``init-db``."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from reconciler.classifier import detect_constraint_type
from reconciler.config.settings import get_settings
from reconciler.db.session import DatabaseManager
from reconciler.logging.setup import configure_logging
from reconciler.migration import is_legacy_format, load_preferences_document

logger = logging.getLogger(__name__)


def cmd_migrate(args: argparse.Namespace) -> int:
    path = Path(args.file)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Cannot read {path}: {exc}", file=sys.stderr)
        return 1
    if not isinstance(raw, dict):
        print(f"{path} does not contain a JSON object", file=sys.stderr)
        return 1

    if is_legacy_format(raw):
        logger.info("Migrating legacy document %s", path)
    preferences = load_preferences_document(raw)
    print(json.dumps(preferences.to_document(), indent=2))
    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    detection = detect_constraint_type(args.text)
    print(json.dumps(detection.model_dump(mode="json", by_alias=True)))
    return 0


def cmd_init_db(_args: argparse.Namespace) -> int:
    async def _create() -> None:
        db = DatabaseManager.from_env()
        try:
            await db.create_schema()
        finally:
            await db.dispose()

    asyncio.run(_create())
    logger.info("Database schema created")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reconciler", description="Preference reconciliation tools")
    sub = parser.add_subparsers(dest="cmd", required=True)

    migrate_p = sub.add_parser("migrate", help="Print the canonical form of a stored preference document")
    migrate_p.add_argument("file")
    classify_p = sub.add_parser("classify", help="Guess the target type and scope of a constraint")
    classify_p.add_argument("text")
    sub.add_parser("init-db", help="Create the database tables")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    # Diagnostics go to stderr so stdout stays machine-readable
    configure_logging(settings.SERVICE_NAME, settings.LOG_LEVEL, settings.LOG_JSON, stream=sys.stderr)

    if args.cmd == "migrate":
        return cmd_migrate(args)
    if args.cmd == "classify":
        return cmd_classify(args)
    return cmd_init_db(args)


if __name__ == "__main__":
    raise SystemExit(main())
