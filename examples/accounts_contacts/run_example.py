#!/usr/bin/env python3
"""
Example: Accounts, Contacts and generated Opportunities

Loads the seed data in ./data using the mapping configs in ./config.
Contacts reference Accounts by business key and Opportunities are
generated from the account document once the Accounts have ids.

Usage:
    # Dry run (no org needed, ids are fabricated)
    python run_example.py

    # Load into the org named by SF_* environment variables
    python run_example.py --live --env qa
"""

import argparse
import logging
import sys
from pathlib import Path

from seedloader.errors import SeedLoaderError
from seedloader.loaders.connection import login
from seedloader.orchestrator import RunOrchestrator
from seedloader.services.generators import generators
from seedloader.settings import RunSettings

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)

EXAMPLE_DIR = Path(__file__).parent


@generators.register("opening_opportunities")
def opening_opportunities(document, identifier_maps):
    """One opening opportunity per account that was loaded."""
    loaded = identifier_maps.get("Account", {})
    return [
        {
            "External_Id__c": f"opp-{account['ExternalKey']}",
            "Name": f"{account['Name']} - Opening",
            "Amount": 10000,
            "AccountKey": account["ExternalKey"],
        }
        for account in document["accounts"]
        if account["ExternalKey"] in loaded
    ]


def create_settings(live: bool, env: str) -> RunSettings:
    """Settings pointing at the example project."""
    return RunSettings.from_env().with_overrides(
        env=env,
        dry_run=not live,
        config_dir=str(EXAMPLE_DIR / "config"),
        data_root=str(EXAMPLE_DIR),
        meta_dir=str(EXAMPLE_DIR / "meta-data"),
        report_dir=str(EXAMPLE_DIR / "reports"),
    )


def run_example(settings: RunSettings) -> int:
    """Run the pipeline and log the outcome."""
    connection = None if settings.dry_run else login(settings)
    try:
        report = RunOrchestrator(settings, connection=connection).run()
    finally:
        if connection is not None:
            connection.close()

    logger.info("=" * 60)
    logger.info("LOAD COMPLETE" + (" (DRY RUN)" if report.dry_run else ""))
    logger.info("=" * 60)
    for step in report.steps:
        logger.info(f"{step.entity_type}: ok={step.ok} errors={step.errors}")
        for failure in step.failures[:10]:
            logger.warning(f"  - {failure.business_key}: {'; '.join(failure.messages)}")
    logger.info(f"Attempted: {report.attempted}, Succeeded: {report.ok}, Failed: {report.errors}")
    return 0 if report.errors == 0 else 2


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed Loader example")
    parser.add_argument("--live", action="store_true", help="Write to the org instead of a dry run")
    parser.add_argument("--env", default="dev", help="Environment overlay (e.g. qa)")
    args = parser.parse_args()

    try:
        return run_example(create_settings(args.live, args.env))
    except SeedLoaderError as e:
        logger.error(f"Load failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
