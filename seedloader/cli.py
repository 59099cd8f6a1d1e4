"""Command line interface for the seed loader."""

import argparse
import json
import logging
import sys
from typing import Optional

from .errors import SeedLoaderError
from .loaders.connection import PlatformConnection, login
from .orchestrator import RunOrchestrator
from .settings import RunSettings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per action."""
    parser = argparse.ArgumentParser(
        prog="seedloader",
        description="Seed Loader - Load seed data into a Salesforce org in dependency order"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--env", help="Environment overlay to use (default: LOADER_ENV or dev)")
    parser.add_argument("--config-dir", help="Directory holding pipeline.json, base/ and env/")
    parser.add_argument("--data-root", help="Directory seed data paths are relative to")
    parser.add_argument("--meta-dir", help="Directory of describe snapshots")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run the pipeline
    run_parser = subparsers.add_parser("run", help="Run the load pipeline")
    run_parser.add_argument("--dry-run", action="store_true", default=None, help="Simulate without writes")
    run_parser.add_argument("--report-dir", help="Directory to write the run report to")
    run_parser.add_argument("--refresh-metadata", action="store_true", default=None,
                            help="Re-fetch describe snapshots from the org")

    # Execution order
    subparsers.add_parser("plan", help="Print the steps in execution order")

    # Configuration check
    subparsers.add_parser("validate", help="Check pipeline and mapping configs without loading data")

    # Preview one entity
    preview_parser = subparsers.add_parser("preview", help="Dry-run up to an entity and print its records")
    preview_parser.add_argument("--entity", required=True, help="Entity type to preview")
    preview_parser.add_argument("--limit", type=int, default=3, help="Number of records to print")

    return parser


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if not args.command:
        parser.print_help()
        return 0

    commands = {
        "run": run_pipeline,
        "plan": show_plan,
        "validate": validate_configs,
        "preview": run_preview,
    }

    try:
        settings = load_settings(args)
        return commands[args.command](args, settings)
    except SeedLoaderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def load_settings(args: argparse.Namespace) -> RunSettings:
    """Environment settings with command line flags applied on top."""
    return RunSettings.from_env().with_overrides(
        env=args.env,
        config_dir=args.config_dir,
        data_root=args.data_root,
        meta_dir=args.meta_dir,
        dry_run=getattr(args, "dry_run", None),
        report_dir=getattr(args, "report_dir", None),
        refresh_metadata=getattr(args, "refresh_metadata", None),
    )


def run_pipeline(args: argparse.Namespace, settings: RunSettings) -> int:
    """Run the pipeline, logging in first unless it is a dry run."""
    planner = RunOrchestrator(settings)
    connection: Optional[PlatformConnection] = None
    if not planner.dry_run:
        connection = login(settings)

    try:
        orchestrator = RunOrchestrator(settings, connection=connection, pipeline=planner.pipeline)
        report = orchestrator.run()
    finally:
        if connection is not None:
            connection.close()

    print("\n" + "=" * 60)
    print("RUN COMPLETE" + (" (DRY RUN)" if report.dry_run else ""))
    print("=" * 60)
    print(f"Status: {report.status.value}")
    for step in report.steps:
        print(f"  {step.entity_type:<30} ok={step.ok:<6} errors={step.errors:<6} {step.elapsed_ms} ms")
    print(f"Attempted: {report.attempted}")
    print(f"Succeeded: {report.ok}")
    print(f"Failed: {report.errors}")
    print(f"Duration: {report.total_elapsed_ms} ms")
    return 0 if report.errors == 0 else 2


def show_plan(args: argparse.Namespace, settings: RunSettings) -> int:
    """Print the steps in execution order."""
    orchestrator = RunOrchestrator(settings)
    for number, step in enumerate(orchestrator.plan(), start=1):
        depends = f" (after {', '.join(sorted(step.depends_on))})" if step.depends_on else ""
        print(f"{number:>3}. {step.entity_type} <- {step.data_source}{depends}")
    return 0


def validate_configs(args: argparse.Namespace, settings: RunSettings) -> int:
    """Load every step's mapping config and check match keys against snapshots."""
    orchestrator = RunOrchestrator(settings)
    steps = orchestrator.plan()

    print("\n=== Validating Configuration ===")
    for step in steps:
        mapping = orchestrator.provider.load_step_config(step)
        mapping.require_match_key()
        print(f"  {step.entity_type}: {mapping.strategy.operation.value} via {mapping.strategy.api.value}, "
              f"match key {mapping.match_key}")

    orchestrator.catalog.validate_match_keys(steps, orchestrator.provider)
    print(f"\nConfiguration is valid ({len(steps)} steps)")
    return 0


def run_preview(args: argparse.Namespace, settings: RunSettings) -> int:
    """Dry-run the pipeline up to an entity and print the records it would commit."""
    orchestrator = RunOrchestrator(settings.with_overrides(dry_run=True))
    records = orchestrator.preview(args.entity, limit=args.limit)
    print(json.dumps(records, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
