"""
Thread-safe accumulation of per-target outcomes.
"""

import threading
import time
from typing import Dict, List, Optional

from models import Outcome, OutcomeStatus, Summary


class ResultAggregator:
    """
    Collects Outcomes from concurrent workers into a Summary.

    Every mutation happens under one lock; workers call record() exactly once
    per target.
    """

    def __init__(self, action_label: str):
        self.action_label = action_label
        self._lock = threading.Lock()
        self._outcomes: Dict[str, Outcome] = {}
        self._counts = {status: 0 for status in OutcomeStatus}
        self._start_time: Optional[float] = None
        self._last_record_time: Optional[float] = None
        self._summary: Optional[Summary] = None

    def start(self) -> None:
        with self._lock:
            self._start_time = time.time()

    def record(self, outcome: Outcome) -> None:
        """
        Record one target's Outcome.

        Raises:
            ValueError: If the target already has an Outcome
            RuntimeError: If the aggregator was finalized
        """
        key = outcome.target.key
        with self._lock:
            if self._summary is not None:
                raise RuntimeError("Cannot record after finalize()")
            if key in self._outcomes:
                raise ValueError(f"Outcome already recorded for {key}")
            self._outcomes[key] = outcome
            self._counts[outcome.status] += 1
            self._last_record_time = time.time()

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return {
                "processed": len(self._outcomes),
                "succeeded": self._counts[OutcomeStatus.SUCCEEDED],
                "skipped": self._counts[OutcomeStatus.SKIPPED],
                "errors": self._counts[OutcomeStatus.FAILED],
            }

    def outcomes(self) -> List[Outcome]:
        with self._lock:
            return list(self._outcomes.values())

    def finalize(self, cancelled: bool = False) -> Summary:
        """
        Freeze the totals into a Summary. Call only after all workers joined.

        Elapsed time runs from start() to the last recorded Outcome.
        """
        with self._lock:
            if self._summary is not None:
                return self._summary
            now = time.time()
            start = self._start_time if self._start_time is not None else now
            end = self._last_record_time or now
            self._summary = Summary(
                action_label=self.action_label,
                processed=len(self._outcomes),
                succeeded=self._counts[OutcomeStatus.SUCCEEDED],
                skipped=self._counts[OutcomeStatus.SKIPPED],
                errors=self._counts[OutcomeStatus.FAILED],
                elapsed_seconds=max(end - start, 0.0),
                start_time=start,
                end_time=end,
                cancelled=cancelled,
                outcomes=tuple(self._outcomes.values()),
            )
            return self._summary
