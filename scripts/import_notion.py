#!/usr/bin/env python3
"""Import Notion databases into a new Storyloom project.

Usage:
  python scripts/import_notion.py --user-id u1 --project-name "My Saga" \
      https://www.notion.so/ws/Characters-<id> <database-id> [--token secret_...] [--preview]

The token falls back to NOTION_TOKEN (env, .env or config.toml).
"""
from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
import sys

# Ensure src is on the import path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from Storyloom.config import load_settings  # type: ignore
from Storyloom.errors import ImporterError  # type: ignore
from Storyloom.importer import format_import_summary, preview_import, run_import  # type: ignore
from Storyloom.logging import setup_logging  # type: ignore


def main() -> int:
    ap = argparse.ArgumentParser(description="Import Notion databases into a Storyloom project")
    ap.add_argument("references", nargs="+", help="Notion database ids or URLs")
    ap.add_argument("--user-id", required=True)
    ap.add_argument("--project-name", default="Imported from Notion")
    ap.add_argument("--token", help="Notion integration token (defaults to NOTION_TOKEN)")
    ap.add_argument("--preview", action="store_true", help="Fetch and classify only; write nothing")
    ap.add_argument("--json", action="store_true", help="Print the full report as JSON")
    args = ap.parse_args()

    settings = load_settings()
    setup_logging(settings)

    token = args.token or (settings.notion_token.get_secret_value() if settings.notion_token else None)
    if not token:
        print("Error: no Notion token; pass --token or set NOTION_TOKEN")
        return 2

    try:
        if args.preview:
            preview = asyncio.run(preview_import(args.references, token, settings=settings))
            for collection in preview.collections:
                print(f"{collection.name}: {collection.inferred_type} ({len(collection.records)} records)")
            for error in preview.errors:
                print(f"  ! {error}")
            return 0 if preview.collections else 1

        report = asyncio.run(
            run_import(args.references, token, args.project_name, args.user_id, settings=settings)
        )
    except ImporterError as exc:
        print(f"ImporterError: {exc}")
        return 1

    if args.json:
        print(json.dumps(report.to_payload(), indent=2, default=str))
    else:
        print(format_import_summary(report))
        for error in report.errors:
            print(f"  ! {error}")
    return 0 if report.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
