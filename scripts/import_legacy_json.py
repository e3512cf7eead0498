#!/usr/bin/env python3
"""
Import legacy per-persona JSON memory into the feedback ledger.

Expected shape:
    {"personas": {"early": {"liked": [...], "disliked": [...], "pairs": [...]}}}

Liked/disliked entries are entity records, optionally wrapped as
{"raw": {...}, "reason": "...", "tags": [...]}. Pairs are
{"chosen": ..., "rejected": ..., "reason": "..."} where chosen/rejected are
entity records or ids.

Usage:
    python scripts/import_legacy_json.py --json data/memory.json --db data/dealscout.db
"""

import argparse
import json
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dealscout.engine import Engine
from dealscout.schema import ValidationError


def _unwrap(entry):
    """Split a legacy entry into (entity, note, tags)."""
    if isinstance(entry, dict) and isinstance(entry.get("raw"), dict):
        entity = dict(entry["raw"])
        entity.setdefault("id", entry.get("id"))
        return entity, entry.get("reason") or entry.get("note"), entry.get("tags") or []
    if isinstance(entry, dict):
        return entry, entry.get("reason") or entry.get("note"), entry.get("tags") or []
    return entry, None, []


def import_memory(json_path: Path, db_path: Path, dry_run: bool = False) -> bool:
    """
    Replay legacy likes, dislikes and pairs through the ledger.

    Args:
        json_path: Path to legacy JSON memory
        db_path: Path to SQLite database file
        dry_run: If True, don't write to database
    """
    print(f"Loading memory from {json_path}...")
    with open(json_path, encoding="utf-8") as f:
        data = json.load(f)

    personas = data.get("personas", {})
    print(f"Found {len(personas)} personas in JSON memory")

    if dry_run:
        print("\n[DRY RUN] Would import:")
        for scope, memory in personas.items():
            print(
                f"  {scope}: {len(memory.get('liked', []))} likes, "
                f"{len(memory.get('disliked', []))} dislikes, {len(memory.get('pairs', []))} pairs"
            )
        return True

    imported = 0
    skipped = 0

    with Engine(db_path) as engine:
        for scope, memory in personas.items():
            for action in ("like", "dislike"):
                for entry in memory.get(f"{action}d", []):
                    entity, note, tags = _unwrap(entry)
                    try:
                        engine.feedback(entity, action, scope=scope, tags=tags, note=note)
                        imported += 1
                    except ValidationError as e:
                        print(f"⚠️  Skipping {scope} {action}: {e}")
                        skipped += 1

            for pair in memory.get("pairs", []):
                try:
                    engine.compare(pair.get("chosen"), pair.get("rejected"), pair.get("reason"), scope=scope)
                    imported += 1
                except (ValidationError, AttributeError) as e:
                    print(f"⚠️  Skipping {scope} pair: {e}")
                    skipped += 1

    print(f"\n✅ Import complete!")
    print(f"   Imported: {imported}")
    print(f"   Skipped:  {skipped}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Import legacy JSON memory into the ledger")
    parser.add_argument("--json", type=Path, default=Path("data/memory.json"),
                       help="Path to legacy JSON memory")
    parser.add_argument("--db", type=Path, default=Path("data/dealscout.db"),
                       help="Path to SQLite database file")
    parser.add_argument("--dry-run", action="store_true",
                       help="Show what would be imported without writing")

    args = parser.parse_args()

    if not args.json.exists():
        print(f"❌ JSON file not found: {args.json}")
        sys.exit(1)

    import_memory(args.json, args.db, dry_run=args.dry_run)


if __name__ == "__main__":
    main()
