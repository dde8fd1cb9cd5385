"""
Reconciliation engine: probes, decides and acts on every target under a
bounded thread pool, then aggregates the outcomes into a Summary.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from aggregator import ResultAggregator
from catalog import DEFAULT_CATALOG, ActionCatalog
from errors import NoTargetsError, TargetError
from executor import ActionExecutor
from models import (
    DecisionKind,
    ErrorKind,
    Outcome,
    OutcomeStatus,
    RequestedAction,
    Summary,
    TargetDescriptor,
)
from probe import StateProbe
from progress import FAILED, PROBING, SKIPPED, SUCCEEDED, ProgressReporter
from resolver import resolve

logger = logging.getLogger(__name__)

# Fleets up to this size fan out fully when no bound is configured
SMALL_FLEET_THRESHOLD = 16
DEFAULT_MAX_PARALLEL = 5


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    AGGREGATING = "aggregating"
    DONE = "done"
    CANCELLED = "cancelled"


def dedupe_targets(targets: Iterable[TargetDescriptor]) -> List[TargetDescriptor]:
    """Drop repeated targets, keeping first-seen order."""
    seen = set()
    unique: List[TargetDescriptor] = []
    for target in targets:
        if target.key in seen:
            logger.debug(f"Ignoring duplicate target {target.key}")
            continue
        seen.add(target.key)
        unique.append(target)
    return unique


class ReconciliationEngine:
    """Runs one requested action across a collection of targets."""

    def __init__(
        self,
        client,
        catalog: ActionCatalog = DEFAULT_CATALOG,
        max_parallel: Optional[int] = None,
        stagger_delay: float = 0.0,
        dry_run: bool = False,
        reporter: Optional[ProgressReporter] = None,
    ):
        """
        Initialize the engine.

        Args:
            client: Provider client shared read-only by all workers
            catalog: Action catalog
            max_parallel: Maximum targets in flight; None picks a default
                from the fleet size
            stagger_delay: Delay between dispatching targets (seconds)
            dry_run: If True, report what would be done without acting
            reporter: Progress sink; a logging reporter if omitted
        """
        if max_parallel is not None and max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self.client = client
        self.catalog = catalog
        self.max_parallel = max_parallel
        self.stagger_delay = stagger_delay
        self.dry_run = dry_run
        self.reporter = reporter or ProgressReporter()

        self.probe = StateProbe(client, catalog)
        self.executor = ActionExecutor(client, catalog)

        self.state = RunState.IDLE
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """
        Stop dispatching for the current run.

        In-flight targets finish their current call and are dropped. The next
        run() starts uncancelled.
        """
        logger.warning("Cancellation requested; outstanding targets will not be recorded")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def parallelism_for(self, count: int) -> int:
        if self.max_parallel is not None:
            return max(1, min(self.max_parallel, count))
        if count <= SMALL_FLEET_THRESHOLD:
            return max(count, 1)
        return DEFAULT_MAX_PARALLEL

    def run(self, targets: Iterable[TargetDescriptor], action: RequestedAction) -> Summary:
        """
        Reconcile every target against the requested action.

        Args:
            targets: Target descriptors (duplicates are dropped)
            action: Requested action, shared by all workers

        Returns:
            Summary built after all workers joined

        Raises:
            UnsupportedAction: Action not in the catalog (before any worker starts)
            ConfigurationError: Invalid action parameters
            NoTargetsError: Empty target collection
        """
        self.catalog.validate(action)
        unique = dedupe_targets(targets)
        if not unique:
            raise NoTargetsError(f"No targets to {action.label}")
        # A cancel only applies to the run in progress
        self._cancel.clear()

        workers = self.parallelism_for(len(unique))
        logger.info("=" * 70)
        logger.info(f"Fleet reconciliation: {action.label}")
        logger.info("=" * 70)
        logger.info(f"Targets: {len(unique)}")
        logger.info(f"Dry run: {self.dry_run}")
        logger.info(f"Max parallel: {workers}")
        logger.info(f"Stagger delay: {self.stagger_delay}s")
        logger.info(f"Start time: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        logger.info("=" * 70)

        aggregator = ResultAggregator(action.label)
        aggregator.start()
        self.state = RunState.RUNNING

        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="reconcile"
        ) as pool:
            futures = {}
            for i, target in enumerate(unique):
                if self._cancel.is_set():
                    break
                if i and self.stagger_delay > 0:
                    # Returns early on cancel
                    self._cancel.wait(self.stagger_delay)
                    if self._cancel.is_set():
                        break
                futures[pool.submit(self._process, target, action, aggregator)] = target

            for future in as_completed(futures):
                target = futures[future]
                try:
                    future.result()
                except Exception as e:
                    logger.exception(f"Unexpected error reconciling {target.name}")
                    outcome = Outcome(
                        target=target,
                        action_label=action.label,
                        status=OutcomeStatus.FAILED,
                        reason=f"Unexpected error: {e}",
                        error_kind=ErrorKind.ACTION_FAILED,
                    )
                    self.reporter.emit(target.name, action.label, FAILED, outcome.reason)
                    aggregator.record(outcome)

        self.state = RunState.AGGREGATING
        cancelled = self._cancel.is_set()
        summary = aggregator.finalize(cancelled=cancelled)
        self.state = RunState.CANCELLED if cancelled else RunState.DONE

        if not cancelled and summary.processed != len(unique):
            raise RuntimeError(
                f"Processed {summary.processed} of {len(unique)} targets"
            )
        return summary

    def _process(
        self,
        target: TargetDescriptor,
        action: RequestedAction,
        aggregator: ResultAggregator,
    ) -> None:
        """Probe, decide and act on one target, then record its Outcome."""
        if self._cancel.is_set():
            return

        label = action.label
        start = time.time()
        self.reporter.emit(target.name, label, PROBING)

        try:
            state = self.probe.probe(target, action)
        except TargetError as e:
            outcome = self._outcome(target, label, OutcomeStatus.FAILED, str(e), start, e.error_kind)
        else:
            decision = resolve(state, action, target.variant, self.catalog)
            if decision.kind is DecisionKind.SKIP:
                outcome = self._outcome(target, label, OutcomeStatus.SKIPPED, decision.reason, start)
            elif decision.kind is DecisionKind.REJECT:
                outcome = self._outcome(
                    target, label, OutcomeStatus.FAILED, decision.reason, start, decision.error_kind
                )
            elif self.dry_run:
                phase = self.catalog.phase_for(action.kind)
                outcome = self._outcome(
                    target,
                    label,
                    OutcomeStatus.SKIPPED,
                    f"dry run: would be {phase} ({decision.reason})",
                    start,
                )
            else:
                if self._cancel.is_set():
                    return
                self.reporter.emit(
                    target.name, label, self.catalog.phase_for(action.kind), decision.reason
                )
                outcome = self.executor.execute(target, action, state)

        self._report(outcome)
        aggregator.record(outcome)

    @staticmethod
    def _outcome(target, label, status, reason, start, error_kind=None) -> Outcome:
        return Outcome(
            target=target,
            action_label=label,
            status=status,
            reason=reason,
            error_kind=error_kind,
            duration_seconds=time.time() - start,
        )

    def _report(self, outcome: Outcome) -> None:
        name = outcome.target.name
        if outcome.status is OutcomeStatus.SKIPPED:
            self.reporter.emit(name, outcome.action_label, SKIPPED, outcome.reason)
        elif outcome.status is OutcomeStatus.SUCCEEDED:
            message = f"status={outcome.status_code}" if outcome.status_code else ""
            self.reporter.emit(name, outcome.action_label, SUCCEEDED, message)
        else:
            kind = outcome.error_kind.value if outcome.error_kind else "error"
            self.reporter.emit(
                name, outcome.action_label, FAILED, f"{kind}: {outcome.reason}"
            )
