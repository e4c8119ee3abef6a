"""
Scrape Coordinator

Drives one scrape cycle: discovers tables, counts them on a bounded worker
pool and reconciles the outcomes into the metric registry. Concurrent
triggers share a single in-flight cycle.
"""

import contextvars
import logging
import threading
import time
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple, Union

from src.exporter.errors import CountError, MissingTable, ScrapeError
from src.exporter.models import ScrapeResult, TableRef
from src.utils.correlation import CorrelationContext

logger = logging.getLogger(__name__)

CountOutcome = Union[float, CountError]

DEFAULT_FAILURE_THRESHOLD = 3


class ScrapeCoordinator:
    """
    Runs scrape cycles and keeps the metric registry in line with the database.

    A failed discovery leaves the previously published values in place. Once
    ``failure_threshold`` discoveries in a row have failed, every series is
    cleared so that stale values are not served indefinitely; the next
    successful cycle repopulates the registry.

    Example usage:
        coordinator = ScrapeCoordinator(discovery, counter, registry, max_workers=4)
        result = coordinator.scrape_once()
    """

    def __init__(
        self,
        discovery,
        counter,
        registry,
        max_workers: int = 1,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    ):
        """
        Initialize the coordinator.

        Args:
            discovery: TableDiscovery (or any object with discover())
            counter: RowCounter (or any object with count(ref))
            registry: MetricRegistry receiving the results
            max_workers: Number of tables counted concurrently; should not
                exceed the executor's connection limit
            failure_threshold: Consecutive failed discoveries before all
                series are cleared
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")

        self.discovery = discovery
        self.counter = counter
        self.registry = registry
        self.max_workers = max_workers
        self.failure_threshold = failure_threshold

        self._workers = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="row-counter"
        )
        self._inflight: Optional[Future] = None
        self._inflight_lock = threading.Lock()
        self._shutting_down = threading.Event()
        self._consecutive_failures = 0

        logger.info(
            f"ScrapeCoordinator initialized (max_workers={max_workers}, "
            f"failure_threshold={failure_threshold})"
        )

    @property
    def consecutive_failures(self) -> int:
        """Number of failed discoveries since the last successful one."""
        return self._consecutive_failures

    def scrape_once(self) -> ScrapeResult:
        """
        Run a scrape cycle, or wait for the one already in flight.

        Never raises: failures are logged and counted in the scrape error
        counter.

        Returns:
            Result of the cycle, shared by every caller that overlapped it
        """
        with self._inflight_lock:
            future = self._inflight
            leader = future is None
            if leader:
                future = Future()
                self._inflight = future

        if not leader:
            logger.debug("Scrape already in flight, waiting for its result")
            return future.result()

        try:
            result = self._run_cycle()
        except Exception:
            logger.error("Unexpected error during scrape cycle", exc_info=True)
            result = ScrapeResult(cycle_id="", success=False, published=self.registry.snapshot())
        except BaseException as e:
            self._release(future)
            future.set_exception(e)
            raise

        self._release(future)
        future.set_result(result)
        return result

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop accepting cycles and abandon queued counts.

        Counts still running are allowed to finish, but their results are
        discarded rather than published.

        Args:
            wait: Block until running counts have finished
        """
        self._shutting_down.set()
        self._workers.shutdown(wait=wait, cancel_futures=True)
        logger.info("ScrapeCoordinator shut down")

    def _release(self, future: Future) -> None:
        with self._inflight_lock:
            if self._inflight is future:
                self._inflight = None

    def _run_cycle(self) -> ScrapeResult:
        """Execute discovery, fan-out counting and reconciliation."""
        with CorrelationContext() as cycle_id:
            start_time = time.perf_counter()
            errors: Dict[str, int] = {}

            if self._shutting_down.is_set():
                return ScrapeResult(cycle_id=cycle_id, success=False, published=self.registry.snapshot())

            try:
                refs = self.discovery.discover()
            except ScrapeError as e:
                self._record_error(errors, e.code)
                return self._discovery_failed(cycle_id, errors, start_time, e)

            self._consecutive_failures = 0
            logger.debug(f"Counting rows of {len(refs)} tables")

            outcomes = self._count_all(refs)

            if self._shutting_down.is_set():
                logger.warning("Shutdown during scrape cycle, discarding counts")
                return ScrapeResult(
                    cycle_id=cycle_id,
                    success=False,
                    published=self.registry.snapshot(),
                    errors=errors,
                    duration_seconds=time.perf_counter() - start_time
                )

            with self.registry.reconciling():
                for ref, outcome in outcomes:
                    if isinstance(outcome, MissingTable):
                        logger.info(f"Table {ref} disappeared during scrape, evicting its series")
                        self.registry.evict(ref)
                        self._record_error(errors, outcome.code)
                    elif isinstance(outcome, CountError):
                        logger.warning(f"Error counting rows of {ref}: {outcome} (code={outcome.code})")
                        self._record_error(errors, outcome.code)
                    else:
                        self.registry.upsert(ref, outcome)

                swept = self.registry.sweep(refs)
                published = self.registry.snapshot()

            if swept:
                logger.info(f"Retired {len(swept)} series for tables no longer present")

            duration = time.perf_counter() - start_time
            self.registry.record_scrape(True, duration)

            logger.info(
                f"Scrape cycle completed in {duration:.3f}s: "
                f"{len(published)} tables published, {sum(errors.values())} errors"
            )

            return ScrapeResult(
                cycle_id=cycle_id,
                success=True,
                published=published,
                errors=errors,
                duration_seconds=duration
            )

    def _discovery_failed(
        self,
        cycle_id: str,
        errors: Dict[str, int],
        start_time: float,
        error: ScrapeError
    ) -> ScrapeResult:
        """Apply the stale-but-available policy after a failed discovery."""
        self._consecutive_failures += 1
        logger.error(
            f"Table discovery failed ({self._consecutive_failures} in a row): "
            f"{error} (code={error.code})"
        )

        if self._consecutive_failures >= self.failure_threshold and len(self.registry) > 0:
            logger.error(
                f"Discovery failed {self._consecutive_failures} times in a row "
                f"(threshold {self.failure_threshold}), clearing published row counts"
            )
            self.registry.clear_all()

        duration = time.perf_counter() - start_time
        self.registry.record_scrape(False, duration)

        return ScrapeResult(
            cycle_id=cycle_id,
            success=False,
            published=self.registry.snapshot(),
            errors=errors,
            duration_seconds=duration
        )

    def _count_all(self, refs: List[TableRef]) -> List[Tuple[TableRef, CountOutcome]]:
        """
        Count every table on the worker pool and wait for all of them.

        Returns:
            (ref, count or error) pairs in discovery order; cancelled counts
            are left out
        """
        futures: List[Tuple[TableRef, Future]] = []
        for ref in refs:
            try:
                # Copy the context so worker log lines carry the cycle ID
                context = contextvars.copy_context()
                futures.append((ref, self._workers.submit(context.run, self._count_table, ref)))
            except RuntimeError:
                if self._shutting_down.is_set():
                    break
                raise

        outcomes = []
        for ref, future in futures:
            try:
                outcomes.append((ref, future.result()))
            except CancelledError:
                logger.debug(f"Count of {ref} was cancelled")

        return outcomes

    def _count_table(self, ref: TableRef) -> CountOutcome:
        """Count one table, returning the error instead of raising it."""
        try:
            count = self.counter.count(ref)
        except CountError as e:
            return e
        except Exception as e:
            logger.error(f"Unexpected error counting rows of {ref}", exc_info=True)
            return CountError("internal", str(e))

        logger.debug(f"Counted {count:.0f} rows in {ref}")
        return count

    def _record_error(self, errors: Dict[str, int], code: str) -> None:
        errors[code] = errors.get(code, 0) + 1
        self.registry.record_error(code)
