#!/usr/bin/env python3
"""
Check that stored learned weights match what the feedback ledger implies.

Usage:
    python scripts/verify_weights.py --db data/dealscout.db [--scope early] [--repair]
"""

import argparse
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dealscout.engine import Engine


def verify(db_path: Path, scopes=None, repair: bool = False) -> bool:
    """
    Compare stored like/dislike counts against the ledger for each scope.

    Returns True if every scope is consistent (after repair, if requested).
    """
    with Engine(db_path) as engine:
        scopes = scopes or [p.id for p in engine.personas.list()]
        ok = True
        for scope in scopes:
            mismatches = engine.ledger.verify(scope)
            if not mismatches:
                print(f"✅ {scope}: weights match ledger")
                continue

            print(f"❌ {scope}: {len(mismatches)} weight mismatches")
            for m in mismatches[:5]:
                print(f"   - {m['category']}:{m['value']} expected {m['expected']} stored {m['stored']}")
            if len(mismatches) > 5:
                print(f"   ... and {len(mismatches) - 5} more")

            if repair:
                engine.ledger.replay(scope)
                remaining = engine.ledger.verify(scope)
                if remaining:
                    print(f"   Replay left {len(remaining)} mismatches")
                    ok = False
                else:
                    print("   Repaired by ledger replay")
            else:
                ok = False
        return ok


def main():
    parser = argparse.ArgumentParser(description="Verify learned weights against the feedback ledger")
    parser.add_argument("--db", type=Path, default=Path("data/dealscout.db"),
                       help="Path to SQLite database file")
    parser.add_argument("--scope", action="append", help="Scope to check (repeatable, default: all personas)")
    parser.add_argument("--repair", action="store_true", help="Replay the ledger for inconsistent scopes")

    args = parser.parse_args()

    if not args.db.exists():
        print(f"❌ Database file not found: {args.db}")
        sys.exit(1)

    success = verify(args.db, args.scope, repair=args.repair)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
