"""
Java process discovery: inspect, classify, filter.
"""

import logging
import threading
from typing import List, Optional, Sequence

from ..models.process_info import ClassifiedProcess, ExclusionRule, ProcessFilter
from . import policy
from .classifier import classify
from .exceptions import OperationCancelled, ProcessUnreadableError
from .inspector import ProcessInspector


class Detector:
    """Finds Java processes and answers exclusion questions about them."""

    def __init__(self, reader: Optional[ProcessInspector] = None,
                 exclusions: Sequence[ExclusionRule] = (),
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.reader = reader or ProcessInspector(logger=self.logger)
        self.exclusions = list(exclusions)

    def discover(self, process_filter: Optional[ProcessFilter] = None,
                 cancel_event: Optional[threading.Event] = None) -> List[ClassifiedProcess]:
        """
        Scan the process table for Java processes matching the filter.

        Raises DiscoveryError if the table cannot be listed and
        OperationCancelled if the event is set before or during the scan.
        Processes that vanish mid-scan are skipped.
        """
        self._check_cancelled(cancel_event)

        if process_filter is not None and process_filter.pids:
            pids = sorted(set(process_filter.pids))
        else:
            pids = self.reader.list_pids()
        self.logger.debug("Scanning %d processes", len(pids))

        found = []
        for pid in pids:
            self._check_cancelled(cancel_event)
            try:
                snapshot = self.reader.snapshot(pid)
            except ProcessUnreadableError as e:
                self.logger.debug("Skipping process %d: %s", pid, e)
                continue

            process = classify(snapshot)
            if not process.is_java:
                continue
            if not policy.matches(process, process_filter, self.logger):
                continue
            found.append(process)

        self.logger.info("Discovered %d Java process(es)", len(found))
        return found

    def find(self, pid: int) -> Optional[ClassifiedProcess]:
        """Fresh read of a single Java process, or None."""
        processes = self.discover(ProcessFilter(pids=[pid]))
        return processes[0] if processes else None

    def is_excluded(self, process: ClassifiedProcess) -> bool:
        return policy.is_excluded(process, self.exclusions, self.logger)

    def _check_cancelled(self, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled("process scan cancelled")
