"""Run orchestrator - executes a seed-loading pipeline step by step."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

from .context import RunContext
from .errors import SeedLoaderError
from .loaders.base import BaseCommitter
from .loaders.bulk import BulkCommitter
from .loaders.dry_run import DryRunCommitter
from .loaders.rest import CompositeCommitter, RestCommitter
from .models.mapping import CommitApi, MappingConfig
from .models.pipeline import PipelineConfig, RunStatus, Step, StepMode
from .models.record import BatchResult, RunReport, StepReport
from .services.config_loader import MappingConfigProvider
from .services.data_sources import DataSourceLoader
from .services.filters import apply_filter
from .services.generators import GeneratorRegistry, generators as default_generators
from .services.metadata import SnapshotCatalog
from .services.reconciler import BatchCommitReconciler
from .services.scheduler import order_steps
from .services.transformer import RecordTransformer
from .services.validator import BatchValidator
from .settings import RunSettings

logger = logging.getLogger(__name__)


class RunOrchestrator:
    """
    Orchestrates a complete load run.

    Handles:
    - Step ordering by dependencies
    - Match key validation before any write
    - Per step: config, seed data, filter / generator, transformation,
      metadata pruning, batch validation, commit and identifier maps
    - Dry runs with fabricated ids
    - Run reporting
    """

    def __init__(
        self,
        settings: RunSettings,
        provider: Optional[MappingConfigProvider] = None,
        data_loader: Optional[DataSourceLoader] = None,
        catalog: Optional[SnapshotCatalog] = None,
        connection: Any = None,
        committer: Optional[BaseCommitter] = None,
        generators: Optional[GeneratorRegistry] = None,
        pipeline: Optional[PipelineConfig] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Run settings
            provider: Mapping config provider (defaults to settings.config_dir)
            data_loader: Seed data loader (defaults to settings.data_root)
            catalog: Metadata catalog (defaults to settings.meta_dir)
            connection: Platform connection (not needed for dry runs)
            committer: Commit collaborator overriding the per-step strategy api
            generators: Generator registry for steps in generate mode
            pipeline: Pipeline to run instead of the provider's pipeline.json
        """
        self.settings = settings
        self.provider = provider or MappingConfigProvider(
            config_dir=settings.config_dir,
            env=settings.env,
            data_root=settings.data_root,
        )
        self.data_loader = data_loader or DataSourceLoader(settings.data_root)
        self.connection = connection
        self.catalog = catalog or SnapshotCatalog(
            meta_dir=settings.meta_dir,
            connection=connection,
            refresh=settings.refresh_metadata,
        )
        self.committer = committer
        self.generators = generators or default_generators
        self.validator = BatchValidator()
        self._pipeline = pipeline
        self._committers: Dict[CommitApi, BaseCommitter] = {}
        self._dry_run_committer: Optional[DryRunCommitter] = None

        # Runtime state
        self.context: Optional[RunContext] = None
        self.report: Optional[RunReport] = None

    @property
    def pipeline(self) -> PipelineConfig:
        if self._pipeline is None:
            self._pipeline = self.provider.load_pipeline()
        return self._pipeline

    @property
    def dry_run(self) -> bool:
        return bool(self.settings.dry_run or self.pipeline.dry_run)

    def plan(self) -> List[Step]:
        """Return the steps in execution order."""
        return order_steps(self.pipeline.steps, self.pipeline.allow_cycle_fallback)

    def new_context(self, dry_run: Optional[bool] = None) -> RunContext:
        context = RunContext(
            env=self.settings.env,
            dry_run=self.dry_run if dry_run is None else dry_run,
            id_map_policy=self.pipeline.id_map_policy,
            constants=self.provider.load_constants(),
        )
        org_id = getattr(self.connection, "org_id", None)
        if org_id:
            context.org_id = org_id
        return context

    def run(self) -> RunReport:
        """
        Run the complete pipeline.

        Returns:
            RunReport with per-step results and totals

        Raises:
            SeedLoaderError: After the report has been finalized and saved.
                Other exceptions are recorded the same way and re-raised.
        """
        self._dry_run_committer = None
        context = self.new_context()
        self.context = context
        self.report = RunReport(
            env=context.env,
            dry_run=context.dry_run,
            status=RunStatus.RUNNING,
            started_at=context.clock(),
        )
        logger.info(f"ENV={context.env} DRY_RUN={context.dry_run} ORG={context.org_id or '-'}")

        current: Optional[Step] = None
        try:
            steps = self.plan()
            logger.info(f"Total steps: {len(steps)}")

            self.catalog.validate_match_keys(steps, self.provider)

            for number, step in enumerate(steps, start=1):
                current = step
                logger.info(f"=== STEP {number}/{len(steps)}: {step.entity_type} ===")
                step_report, _ = self.run_step(step, context)
                self.report.add_step(step_report)
                logger.info(
                    f"SUMMARY: {step.entity_type} (ok={step_report.ok}, "
                    f"errors={step_report.errors}, elapsed={step_report.elapsed_ms} ms)"
                )

            self.report.finalize(context.clock(), RunStatus.COMPLETED)
            logger.info(
                f"=== RUN COMPLETED: attempted={self.report.attempted} ok={self.report.ok} "
                f"errors={self.report.errors} total={self.report.total_elapsed_ms} ms ==="
            )

        except SeedLoaderError as e:
            if current is not None:
                e.with_context(current.entity_type)
            logger.error(f"Run failed: {e}")
            self.report.record_fatal(e.message, entity_type=e.entity_type, business_key=e.business_key)
            self.report.finalize(context.clock(), RunStatus.FAILED)
            raise

        except Exception as e:
            logger.error(f"Run failed with unexpected error: {e!r}")
            self.report.record_fatal(
                str(e) or type(e).__name__,
                entity_type=current.entity_type if current is not None else None,
            )
            self.report.finalize(context.clock(), RunStatus.FAILED)
            raise

        finally:
            if not self.report.finalized:
                self.report.finalize(context.clock(), RunStatus.FAILED)
            self._save_report()

        return self.report

    def run_step(self, step: Step, context: RunContext) -> Tuple[StepReport, List[Dict[str, Any]]]:
        """
        Run one step and merge its committed identifiers into the context.

        Returns:
            The step report and the working set that was committed
        """
        started = context.clock()
        mapping = self.provider.load_step_config(step)
        match_key = mapping.require_match_key()
        if step.config_file:
            logger.info(f"[{step.entity_type}] Using config file: {step.config_file}")

        records = self.prepare_records(step, mapping, context)
        logger.info(f"[{step.entity_type}] Built {len(records)} records ready for {mapping.strategy.operation.value}")

        committer = self._committer_for(mapping, context.dry_run)
        reconciler = BatchCommitReconciler(committer, None if context.dry_run else self.connection)
        result = reconciler.commit(step.entity_type, records, mapping.strategy, match_key)

        added = context.identifier_maps.merge(step.entity_type, result.identifier_map)
        logger.debug(f"[{step.entity_type}] {added} identifiers added")

        elapsed_ms = int((context.clock() - started).total_seconds() * 1000)
        return self._step_report(step, result, len(records), elapsed_ms, context.dry_run), records

    def prepare_records(
        self,
        step: Step,
        mapping: MappingConfig,
        context: RunContext
    ) -> List[Dict[str, Any]]:
        """Load, filter, transform, prune and validate a step's working set."""
        document = self.data_loader.load(step.data_source)
        maps = context.identifier_maps.view()

        if step.mode == StepMode.GENERATE:
            logger.info(f"[{step.entity_type}] Running generator: {step.generator}")
            seed = self.generators.run(step.generator, document, maps)
        else:
            seed = self.data_loader.records_at(document, step.data_key)

        try:
            selected = apply_filter(seed, step.filter)
        except SeedLoaderError as e:
            raise e.with_context(step.entity_type)
        logger.info(f"[{step.entity_type}] Records to process: {len(selected)} of {len(seed)}")

        operation = mapping.strategy.operation
        describe = self.catalog.describe(step.entity_type)

        transformer = RecordTransformer(mapping, context.constants)
        work = transformer.transform_all(selected, maps)

        pruned = self.catalog.prune_fields(step.entity_type, work, describe, operation)
        pruned_fields = self._field_names(work) - self._field_names(pruned)

        self.catalog.validate_batch(step.entity_type, pruned, describe, operation)
        self.validator.validate(mapping, pruned, pruned_fields)
        return pruned

    def preview(self, entity_type: str, limit: int = 3) -> List[Dict[str, Any]]:
        """
        Dry-run the pipeline up to the first step loading entity_type.

        Returns:
            The first ``limit`` records that step would commit
        """
        self._dry_run_committer = None
        context = self.new_context(dry_run=True)
        for step in self.plan():
            _, records = self.run_step(step, context)
            if step.entity_type == entity_type:
                return records[:limit]
        raise SeedLoaderError(f"No step loads {entity_type}", entity_type=entity_type)

    def _committer_for(self, mapping: MappingConfig, dry_run: bool) -> BaseCommitter:
        if dry_run:
            if self._dry_run_committer is None:
                self._dry_run_committer = DryRunCommitter()
            return self._dry_run_committer
        if self.committer is not None:
            return self.committer
        api = mapping.strategy.api
        if api not in self._committers:
            self._committers[api] = self._create_committer(api)
        return self._committers[api]

    @staticmethod
    def _create_committer(api: CommitApi) -> BaseCommitter:
        """Create an appropriate committer for the strategy api."""
        if api == CommitApi.COMPOSITE:
            return CompositeCommitter()
        elif api == CommitApi.BULK:
            return BulkCommitter()
        return RestCommitter()

    @staticmethod
    def _field_names(records: List[Dict[str, Any]]) -> Set[str]:
        names: Set[str] = set()
        for record in records:
            names.update(record.keys())
        return names

    @staticmethod
    def _step_report(
        step: Step,
        result: BatchResult,
        attempted: int,
        elapsed_ms: int,
        dry_run: bool
    ) -> StepReport:
        return StepReport(
            entity_type=step.entity_type,
            data_source=step.data_source,
            data_key=step.data_key,
            mode=step.mode.value,
            generator=step.generator,
            config_file=step.config_file,
            attempted=attempted,
            ok=result.ok_count,
            errors=len(result.failures),
            elapsed_ms=elapsed_ms,
            dry_run=dry_run,
            failures=list(result.failures),
        )

    def _save_report(self) -> Optional[Path]:
        """Save the run report as JSON when a report directory is configured."""
        if not self.settings.report_dir or self.report is None:
            return None
        report_dir = Path(self.settings.report_dir)
        report_dir.mkdir(parents=True, exist_ok=True)
        stamp = (self.report.started_at or self.report.finished_at).strftime('%Y%m%d_%H%M%S')
        filepath = report_dir / f"run_report_{stamp}.json"
        suffix = 1
        while filepath.exists():
            suffix += 1
            filepath = report_dir / f"run_report_{stamp}_{suffix}.json"
        with open(filepath, 'w') as f:
            json.dump(self.report.to_dict(), f, indent=2, default=str)
        logger.info(f"Saved run report to {filepath}")
        return filepath
