import argparse
import json
from datetime import datetime
from pathlib import Path

from . import __version__
from .engine import Engine
from .env import get_settings, load_env
from .export import write_json, write_jsonl
from .logger import get_logger
from .schema import ValidationError
from .sync import EntityStatusClient


def _open_engine(args: argparse.Namespace) -> Engine:
    settings = get_settings()
    db_path = Path(args.db) if args.db else settings.db_path
    dispatcher = None
    if settings.api_base:
        dispatcher = EntityStatusClient(settings.api_base, settings.api_key, timeout=settings.sync_timeout)
    return Engine(db_path, dispatcher=dispatcher).open()


def _read_json(path_str: str):
    path = Path(path_str)
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise SystemExit(f"Invalid JSON in {path}: {e}")


def _entity_arg(value: str):
    """An entity is either a JSON file path or a bare entity id."""
    if value.endswith(".json"):
        return _read_json(value)
    return value


def _print_record(record) -> None:
    status = f"replaced {record.replaced_action}" if record.replaced else "new"
    print(f"{record.action.upper()}: {record.display_name or record.entity_id} [{status}]")
    print(f"  Scope: {record.scope}")
    print(f"  Datapoints: {len(record.datapoints)}")


def cmd_init(args: argparse.Namespace) -> None:
    engine = _open_engine(args)
    print(f"Database ready: {engine.db_path}")
    active = engine.personas.active()
    print(f"Active persona: {active.id if active else 'none'}")
    engine.close()


def cmd_personas(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        for persona in engine.personas.list():
            marker = "*" if persona.is_active else " "
            print(f"{marker} {persona.id:<8} {persona.name}")
            if args.verbose:
                print(f"    {persona.description}")
                for tag, weight in sorted(persona.recipe.weights.items()):
                    print(f"    {tag}: {weight:+.2f}")


def cmd_use(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        persona = engine.personas.activate(args.persona)
        print(f"Active persona: {persona.id} ({persona.name})")


def _cmd_feedback(args: argparse.Namespace, action: str) -> None:
    user_agreed = None
    if args.agreed:
        user_agreed = True
    elif args.disagreed:
        user_agreed = False
    with _open_engine(args) as engine:
        record = engine.feedback(
            _entity_arg(args.entity),
            action,
            scope=args.scope,
            tags=args.tag or [],
            note=args.note,
            entity_type=args.type,
            prior_score=args.prior_score,
            user_agreed=user_agreed,
        )
        _print_record(record)


def cmd_like(args: argparse.Namespace) -> None:
    _cmd_feedback(args, "like")


def cmd_dislike(args: argparse.Namespace) -> None:
    _cmd_feedback(args, "dislike")


def cmd_compare(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        pair = engine.compare(
            _entity_arg(args.chosen),
            _entity_arg(args.rejected),
            reason=args.reason,
            scope=args.scope,
            entity_type=args.type,
        )
        print(f"Recorded: {pair.chosen_name or pair.chosen_entity_id} over {pair.rejected_name or pair.rejected_entity_id}")


def cmd_view(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        entry = engine.view(_entity_arg(args.entity), entity_type=args.type)
        print(f"Queued viewed status for {entry.entity_id}")


def cmd_score(args: argparse.Namespace) -> None:
    data = _read_json(args.input)
    entities = data if isinstance(data, list) else [data]
    with _open_engine(args) as engine:
        ranked = engine.score_many(entities, scope=args.scope, entity_type=args.type, use_recipe=not args.no_recipe)
        if args.json:
            print(json.dumps([{"id": f.id, "name": f.display_name, **r.to_dict()} for f, r in ranked], indent=2))
            return
        for features, result in ranked:
            print(f"{result.score:>3}  {result.verdict:<12} {features.display_name or features.id}")
            for line in result.matches + result.warnings:
                print(f"       {line}")


def cmd_weights(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        scope = engine.resolve_scope(args.scope)
        if args.drift:
            persona = engine.personas.get(scope)
            if persona is None:
                raise SystemExit(f"Scope '{scope}' has no persona recipe")
            rows = engine.preferences.drift(scope, persona.recipe.weights)
            if not rows:
                print("No recipe tags learned yet.")
            for row in rows:
                print(f"{row['category']}:{row['value']}  default {row['default']:+.2f}  learned {row['learned']:+.2f}  drift {row['drift']:+.2f}")
            return

        views = engine.preferences.top_weights(scope, positive=not args.negative, limit=args.top)
        if not views:
            print("No learned weights yet.")
            return
        for view in views:
            print(f"{view.derived_weight:+.2f}  {view.category}:{view.value}  (+{view.like_count}/-{view.dislike_count})")
            if view.reasons and args.reasons:
                print(f"       reasons: {'; '.join(view.reasons)}")


def cmd_stats(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        scope = engine.resolve_scope(args.scope)
        stats = engine.stats(scope)
        print(f"Scope: {scope}")
        print(f"  Likes: {stats['likes']}  Dislikes: {stats['dislikes']}  Total: {stats['total']}")
        print(f"  Agreed with prior score: {stats['agreed']}")
        print(f"  Preference pairs: {stats['pairs']}")
        print(f"  Learned weights: {stats['weights']}")
        print(f"  Outbox: {stats['outbox']['pending']} pending, {stats['outbox']['parked']} parked")


def cmd_export(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        scope = engine.resolve_scope(args.scope)
        exported_at = datetime.now().isoformat() if args.timestamp else None
        document = engine.exporter.export_document(scope, exported_at=exported_at)
        output = Path(args.output or f"exports/training-{scope}.json")
        write_json(output, document)
        print(f"Saved: {output}")
        if args.dpo:
            count = write_jsonl(Path(args.dpo), engine.exporter.export_dpo(scope))
            print(f"Saved {count} DPO lines: {args.dpo}")


def cmd_sync(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        if engine.dispatcher is None:
            raise SystemExit("DEALSCOUT_API_BASE not set. Set env var to enable sync.")
        result = engine.drain(batch_size=args.batch_size)
        print(f"Done. sent={result.sent} failed={result.failed} parked={result.parked} skipped={result.skipped}")
        get_logger().log_metrics_summary()


def cmd_outbox(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        entries = engine.outbox.parked() if args.parked else engine.outbox.entries()
        if not entries:
            print("Outbox is empty.")
            return
        for entry in entries:
            state = "parked" if entry.parked else "pending"
            print(f"[{state}] #{entry.id} {entry.action} {entry.entity_type}/{entry.entity_id} attempts={entry.attempts}")
            if entry.last_error:
                print(f"    last error: {entry.last_error}")


def cmd_replay(args: argparse.Namespace) -> None:
    with _open_engine(args) as engine:
        scope = engine.resolve_scope(args.scope)
        count = engine.ledger.replay(scope)
        print(f"Replayed {count} feedback records for {scope}")


def _add_feedback_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("entity", help="Entity JSON file or entity id")
    p.add_argument("--type", help="Entity type: person, company or talent_signal")
    p.add_argument("--tag", action="append", help="Structured tag (repeatable)")
    p.add_argument("--note", help="Free-text reason")
    p.add_argument("--scope", help="Persona scope (default: active persona)")
    p.add_argument("--prior-score", type=int, help="Score shown before the feedback")
    agree = p.add_mutually_exclusive_group()
    agree.add_argument("--agreed", action="store_true", help="Feedback agrees with the prior score")
    agree.add_argument("--disagreed", action="store_true", help="Feedback disagrees with the prior score")


def main():
    # Load .env if present (DEALSCOUT_DB_PATH, DEALSCOUT_API_BASE, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="dealscout", description="Deal Scout: learn what you like, score what you haven't seen")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--db", help="Path to SQLite database (default: DEALSCOUT_DB_PATH or data/dealscout.db)")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init", help="Create the database and seed default personas")
    ini.set_defaults(func=cmd_init)

    per = subparsers.add_parser("personas", help="List personas (* marks the active one)")
    per.add_argument("--verbose", "-v", action="store_true", help="Show descriptions and recipe weights")
    per.set_defaults(func=cmd_personas)

    use = subparsers.add_parser("use", help="Switch the active persona")
    use.add_argument("persona", help="Persona id (early, growth, pe, ib, ...)")
    use.set_defaults(func=cmd_use)

    lk = subparsers.add_parser("like", help="Record a like")
    _add_feedback_args(lk)
    lk.set_defaults(func=cmd_like)

    dl = subparsers.add_parser("dislike", help="Record a dislike")
    _add_feedback_args(dl)
    dl.set_defaults(func=cmd_dislike)

    cmp = subparsers.add_parser("compare", help="Record that one entity is preferred over another")
    cmp.add_argument("chosen", help="Preferred entity (JSON file or id)")
    cmp.add_argument("rejected", help="Other entity (JSON file or id)")
    cmp.add_argument("--reason", help="Why the first one wins")
    cmp.add_argument("--type", help="Entity type for bare ids")
    cmp.add_argument("--scope", help="Persona scope (default: active persona)")
    cmp.set_defaults(func=cmd_compare)

    vw = subparsers.add_parser("view", help="Queue a 'viewed' status for the remote")
    vw.add_argument("entity", help="Entity JSON file or entity id")
    vw.add_argument("--type", help="Entity type for bare ids")
    vw.set_defaults(func=cmd_view)

    sc = subparsers.add_parser("score", help="Score entities from a JSON file (object or list)")
    sc.add_argument("--input", required=True, help="Path to entity JSON")
    sc.add_argument("--type", help="Entity type (inferred when omitted)")
    sc.add_argument("--scope", help="Persona scope (default: active persona)")
    sc.add_argument("--no-recipe", action="store_true", help="Ignore the persona recipe")
    sc.add_argument("--json", action="store_true", help="Print JSON instead of text")
    sc.set_defaults(func=cmd_score)

    wt = subparsers.add_parser("weights", help="Show the strongest learned weights")
    wt.add_argument("--scope", help="Persona scope (default: active persona)")
    wt.add_argument("--top", type=int, default=10, help="How many to show (default 10)")
    wt.add_argument("--negative", action="store_true", help="Show the most negative weights")
    wt.add_argument("--reasons", action="store_true", help="Show stored reasons")
    wt.add_argument("--drift", action="store_true", help="Compare learned weights with recipe defaults")
    wt.set_defaults(func=cmd_weights)

    st = subparsers.add_parser("stats", help="Feedback and outbox counts")
    st.add_argument("--scope", help="Persona scope (default: active persona)")
    st.set_defaults(func=cmd_stats)

    ex = subparsers.add_parser("export", help="Export training data for a scope")
    ex.add_argument("--scope", help="Persona scope (default: active persona)")
    ex.add_argument("--output", help="JSON document path (default: exports/training-<scope>.json)")
    ex.add_argument("--dpo", help="Also write DPO JSONL to this path")
    ex.add_argument("--timestamp", action="store_true", help="Include exported_at in metadata")
    ex.set_defaults(func=cmd_export)

    sy = subparsers.add_parser("sync", help="Send pending outbox entries to the remote")
    sy.add_argument("--batch-size", type=int, default=20, help="Entries per drain (default 20)")
    sy.set_defaults(func=cmd_sync)

    ob = subparsers.add_parser("outbox", help="List outbox entries")
    ob.add_argument("--parked", action="store_true", help="Only entries that exhausted their attempts")
    ob.set_defaults(func=cmd_outbox)

    rp = subparsers.add_parser("replay", help="Rebuild learned weights from the feedback ledger")
    rp.add_argument("--scope", help="Persona scope (default: active persona)")
    rp.set_defaults(func=cmd_replay)

    args = parser.parse_args()

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        try:
            args.func(args)
        except ValidationError as e:
            raise SystemExit(f"Invalid input: {e}")
        return

    parser.print_help()


if __name__ == "__main__":
    main()
