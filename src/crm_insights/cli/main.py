"""Main CLI entry point."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional


def main(argv: Optional[list[str]] = None) -> None:
    """Parse args and dispatch to subcommands."""
    parser = argparse.ArgumentParser(
        prog="crm-insights",
        description="Deal risk, next best actions and lead scoring for CRM snapshots",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # import
    import_parser = subparsers.add_parser("import", help="Load opportunity/lead snapshots into the store")
    import_parser.add_argument(
        "--input",
        type=Path,
        required=True,
        help='JSON file: {"opportunities": [...], "leads": [...]} or a list of opportunities',
    )
    import_parser.add_argument(
        "--db",
        type=Path,
        default=Path("crm_insights.db"),
        help="Path to SQLite database",
    )

    # assess
    assess_parser = subparsers.add_parser("assess", help="Deal risk and next actions for stored opportunities")
    _add_scoring_args(assess_parser)
    assess_parser.add_argument(
        "--stage",
        type=str,
        default=None,
        help="Only assess opportunities in this stage (e.g. prospecting)",
    )

    # leads
    leads_parser = subparsers.add_parser("leads", help="Score stored leads")
    _add_scoring_args(leads_parser)

    # insights
    insights_parser = subparsers.add_parser("insights", help="Query or prune stored insights")
    insights_parser.add_argument(
        "action",
        choices=["latest", "cleanup"],
        help="Show newest insight for an entity, or delete old insights",
    )
    insights_parser.add_argument(
        "--db",
        type=Path,
        default=Path("crm_insights.db"),
        help="Path to SQLite database",
    )
    insights_parser.add_argument("--entity-type", type=str, default="opportunity", help="opportunity or lead")
    insights_parser.add_argument("--entity-id", type=str, help="Entity id (for latest)")
    insights_parser.add_argument(
        "--type",
        type=str,
        default="deal_risk",
        choices=["deal_risk", "next_action", "lead_scoring"],
        help="Insight type (for latest)",
    )
    insights_parser.add_argument("--org", type=str, default="default", help="Organization id (for cleanup)")
    insights_parser.add_argument(
        "--days",
        type=int,
        default=30,
        help="Delete insights older than this many days (default: 30)",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "import":
        _run_import(args)
    elif args.command == "assess":
        _run_assess(args)
    elif args.command == "leads":
        _run_leads(args)
    elif args.command == "insights":
        _run_insights(args)
    else:
        parser.print_help()


def _add_scoring_args(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--db",
        type=Path,
        default=Path("crm_insights.db"),
        help="Path to SQLite database",
    )
    subparser.add_argument(
        "--ai",
        action="store_true",
        help="Use the AI provider from CRM_INSIGHTS_LLM_PROVIDER (falls back to rules)",
    )
    subparser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Scoring config YAML (weights, stage/competition tables, batch size)",
    )
    subparser.add_argument("--org", type=str, default="default", help="Organization id")
    subparser.add_argument("--user", type=str, default="cli", help="Requesting user id")
    subparser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write results to file (default: stdout)",
    )


def _load_config(args: argparse.Namespace):
    from crm_insights.config import DEFAULT_CONFIG, ScoringConfig

    if args.config is None:
        return DEFAULT_CONFIG
    if not args.config.exists():
        raise SystemExit(f"Config file not found: {args.config}")
    try:
        return ScoringConfig.from_yaml(args.config)
    except ValueError as e:
        raise SystemExit(f"Invalid scoring config {args.config}: {e}")


def _emit(data: Any, output: Optional[Path], summary: str) -> None:
    text = json.dumps(data, indent=2, default=str)
    if output:
        output.write_text(text, encoding="utf-8")
        print(f"{summary} (wrote to {output})")
    else:
        print(text)


def _outcomes_to_json(outcomes: list) -> list[dict[str, Any]]:
    return [o.model_dump(mode="json") for o in outcomes]


def _run_import(args: argparse.Namespace) -> None:
    """Run import command."""
    from pydantic import ValidationError

    from crm_insights.models import LeadSnapshot, OpportunitySnapshot
    from crm_insights.store import SnapshotStore

    if not args.input.exists():
        raise SystemExit(f"Input file not found: {args.input}")
    try:
        data = json.loads(args.input.read_text())
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid JSON in {args.input}: {e}")
    if isinstance(data, list):
        data = {"opportunities": data}

    try:
        opportunities = [OpportunitySnapshot.model_validate(o) for o in data.get("opportunities", [])]
        leads = [LeadSnapshot.model_validate(lead) for lead in data.get("leads", [])]
    except ValidationError as e:
        raise SystemExit(f"Invalid snapshot in {args.input}: {e}")

    store = SnapshotStore(args.db)
    opps_new = sum(1 for opp in opportunities if store.upsert_opportunity(opp))
    leads_new = sum(1 for lead in leads if store.upsert_lead(lead))
    print(
        f"Store: {len(opportunities)} opportunities ({opps_new} new), "
        f"{len(leads)} leads ({leads_new} new)"
    )


def _run_assess(args: argparse.Namespace) -> None:
    """Run assess command: deal risk + next actions, persisted."""
    from crm_insights.errors import InsightStoreError
    from crm_insights.models import InsightContext
    from crm_insights.pipeline import run_pipeline

    context = InsightContext(organization_id=args.org, user_id=args.user)
    try:
        results = run_pipeline(
            context,
            db_path=args.db,
            use_ai=args.ai,
            stage=args.stage,
            config=_load_config(args),
        )
    except InsightStoreError as e:
        raise SystemExit(f"Could not persist insights: {e}")
    except ValueError as e:
        raise SystemExit(str(e))

    n_opps = len(results["deal_risk"])
    if n_opps == 0:
        print(
            "No opportunities in store. Run import first:\n"
            "  crm-insights import --input snapshots.json --db crm_insights.db",
            file=sys.stderr,
        )
        raise SystemExit(1)

    output = {kind: _outcomes_to_json(outcomes) for kind, outcomes in results.items()}
    _emit(output, args.output, f"Assessed {n_opps} opportunities")


def _run_leads(args: argparse.Namespace) -> None:
    """Run leads command."""
    from crm_insights.errors import InsightStoreError
    from crm_insights.models import InsightContext, InsightType
    from crm_insights.pipeline import build_service

    context = InsightContext(organization_id=args.org, user_id=args.user)
    service = build_service(args.db, use_ai=args.ai, config=_load_config(args))
    try:
        outcomes = asyncio.run(service.run_batch(InsightType.LEAD_SCORING, context, args.ai))
    except InsightStoreError as e:
        raise SystemExit(f"Could not persist insights: {e}")

    if not outcomes:
        print("No leads in store. Run import first.", file=sys.stderr)
        raise SystemExit(1)
    _emit(_outcomes_to_json(outcomes), args.output, f"Scored {len(outcomes)} leads")


def _run_insights(args: argparse.Namespace) -> None:
    """Run insights command."""
    from crm_insights.models import EntityType, InsightType
    from crm_insights.store import InsightStore

    store = InsightStore(args.db)
    if args.action == "latest":
        if not args.entity_id:
            raise SystemExit("insights latest requires --entity-id")
        try:
            entity_type = EntityType(args.entity_type)
        except ValueError:
            raise SystemExit(f"Unknown entity type: {args.entity_type}")
        record = store.get_latest(entity_type, args.entity_id, InsightType(args.type))
        if record is None:
            print(f"No {args.type} insight for {args.entity_type} {args.entity_id}", file=sys.stderr)
            raise SystemExit(1)
        print(json.dumps(record.model_dump(mode="json"), indent=2, default=str))
    elif args.action == "cleanup":
        removed = store.cleanup_old(args.org, max_age_days=args.days)
        print(f"Deleted {removed} insights older than {args.days} days for {args.org}")


if __name__ == "__main__":
    main()
