"""Completion polling for dispatched runs."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Optional, Tuple

from .constants import MAX_TRACKED
from .contracts import RunHandle, RunStatus, Scope, WorkflowRun
from .exceptions import ProviderError, StatusFetchError, WaitCancelled, WaitTimeout
from .providers import BaseProvider

logger = logging.getLogger(__name__)


class CompletionWaiter:
    """Poll a run until it reaches a terminal lifecycle state.

    Terminal snapshots of the most recent ``cache_size`` runs are
    remembered, so waiting again on a run that already finished returns the
    same snapshot without another provider call.
    """

    def __init__(
        self,
        provider: BaseProvider,
        max_consecutive_failures: int = 3,
        cache_size: int = MAX_TRACKED,
    ) -> None:
        self._provider = provider
        self.max_consecutive_failures = max_consecutive_failures
        self.cache_size = cache_size
        self._terminal: OrderedDict[Tuple[Scope, int], RunStatus] = OrderedDict()

    async def await_completion(
        self,
        scope: Scope,
        run_handle: RunHandle,
        poll_interval: float = 5.0,
        timeout: float = 1800.0,
        cancel: Optional[asyncio.Event] = None,
    ) -> RunStatus:
        """Return the first terminal status observed for ``run_handle``.

        Any conclusion counts as terminal; callers inspect
        ``RunStatus.conclusion`` to decide whether the run succeeded. The
        wait ends within ``timeout + poll_interval`` seconds, including the
        time spent in status fetches.

        Args:
            scope: Repository the run belongs to.
            run_handle: Resolved run to watch.
            poll_interval: Seconds between status fetches.
            timeout: Upper bound on total wait time in seconds.
            cancel: Optional event that interrupts the wait when set.

        Raises:
            WaitTimeout: The deadline passed before the run finished.
            StatusFetchError: More than ``max_consecutive_failures`` fetches
                in a row failed.
            WaitCancelled: ``cancel`` was set.
        """
        key = (scope, run_handle.run_id)
        cached = self._terminal.get(key)
        if cached is not None:
            self._terminal.move_to_end(key)
            return cached.model_copy()

        token = run_handle.correlation_token
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        failures = 0

        while True:
            if cancel is not None and cancel.is_set():
                raise WaitCancelled(
                    f"Wait for run {run_handle.run_id} cancelled", token
                )

            budget = deadline - loop.time() + poll_interval
            try:
                run = await self._fetch(scope, run_handle, budget, cancel, timeout)
            except ProviderError as e:
                failures += 1
                if failures > self.max_consecutive_failures:
                    logger.error(
                        f"Giving up on run {run_handle.run_id} after {failures} "
                        f"failed status fetches for correlation_token={token}: {e}"
                    )
                    raise StatusFetchError(
                        f"Status of run {run_handle.run_id} unavailable after "
                        f"{failures} consecutive failures",
                        token,
                    ) from e
                logger.warning(
                    f"Status fetch {failures}/{self.max_consecutive_failures} failed "
                    f"for run {run_handle.run_id}, correlation_token={token}: {e}"
                )
            else:
                failures = 0
                status = RunStatus.from_run(run)
                if status.is_terminal:
                    self._remember(key, status)
                    logger.info(
                        f"Run {run_handle.run_id} completed with conclusion "
                        f"{status.conclusion} for correlation_token={token}"
                    )
                    return status.model_copy()
                logger.debug(
                    f"Run {run_handle.run_id} is {status.lifecycle_state} "
                    f"for correlation_token={token}"
                )

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise self._timeout(run_handle, timeout)
            await self._sleep(min(poll_interval, remaining), cancel, run_handle)

    async def _fetch(
        self,
        scope: Scope,
        run_handle: RunHandle,
        budget: float,
        cancel: Optional[asyncio.Event],
        timeout: float,
    ) -> WorkflowRun:
        """Fetch the run, giving up after ``budget`` seconds or on ``cancel``."""
        fetch = asyncio.ensure_future(self._provider.get_run(scope, run_handle.run_id))
        pending = {fetch}
        cancelled = None
        if cancel is not None:
            cancelled = asyncio.ensure_future(cancel.wait())
            pending.add(cancelled)
        try:
            done, _ = await asyncio.wait(
                pending, timeout=max(budget, 0), return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in pending:
                if not task.done():
                    task.cancel()

        if fetch in done:
            return fetch.result()
        if cancelled is not None and cancelled in done:
            raise WaitCancelled(
                f"Wait for run {run_handle.run_id} cancelled",
                run_handle.correlation_token,
            )
        raise self._timeout(run_handle, timeout)

    def _timeout(self, run_handle: RunHandle, timeout: float) -> WaitTimeout:
        logger.error(
            f"Run {run_handle.run_id} still running after {timeout}s "
            f"for correlation_token={run_handle.correlation_token}"
        )
        return WaitTimeout(
            f"Run {run_handle.run_id} did not complete within {timeout}s",
            run_handle.correlation_token,
        )

    def _remember(self, key: Tuple[Scope, int], status: RunStatus) -> None:
        self._terminal[key] = status
        self._terminal.move_to_end(key)
        while len(self._terminal) > self.cache_size:
            self._terminal.popitem(last=False)

    async def _sleep(
        self, delay: float, cancel: Optional[asyncio.Event], run_handle: RunHandle
    ) -> None:
        if cancel is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise WaitCancelled(
            f"Wait for run {run_handle.run_id} cancelled",
            run_handle.correlation_token,
        )
