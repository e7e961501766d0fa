"""Drive one run from dispatch to artifact download."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Optional

from .artifacts import ArtifactFetcher
from .config import RunbeaconConfig, load_config
from .constants import MAX_TRACKED
from .contracts import (
    OrchestrationResult,
    OrchestrationState,
    RunHandle,
    Scope,
    new_correlation_token,
)
from .correlation import CorrelationStrategy, RunCorrelator, get_strategy
from .dispatch import WorkflowDispatcher
from .exceptions import (
    ArtifactDownloadError,
    CorrelationNotFound,
    ProviderError,
    RunbeaconError,
    WaitCancelled,
    WaitTimeout,
)
from .persistence import WorkflowRecordRepository, get_repository
from .providers import BaseProvider
from .utils.retry import schedule_retry
from .waiter import CompletionWaiter

logger = logging.getLogger(__name__)


class RunOrchestrator:
    """Dispatch a workflow, correlate it, wait for it and fetch its artifact.

    Each call to :meth:`run` owns one correlation token. Several calls may
    run concurrently on the same orchestrator; they share only the injected
    record repository.
    """

    def __init__(
        self,
        provider: BaseProvider,
        repository: WorkflowRecordRepository | None = None,
        config: RunbeaconConfig | None = None,
        strategy: CorrelationStrategy | str | None = None,
    ) -> None:
        self.config = config or load_config()
        self._provider = provider
        self._repository = repository or get_repository()
        self.dispatcher = WorkflowDispatcher(
            provider,
            reference_branch=self.config.reference_branch,
            token_input=self.config.token_input,
        )
        self.correlator = RunCorrelator(
            provider,
            reference_branch=self.config.reference_branch,
            lookback=self.config.lookback,
            reject_ambiguous=self.config.reject_ambiguous,
        )
        self.waiter = CompletionWaiter(
            provider, max_consecutive_failures=self.config.max_consecutive_poll_failures
        )
        self.fetcher = ArtifactFetcher(provider)
        strategy = strategy or self.config.correlation_strategy
        self.strategy = get_strategy(strategy) if isinstance(strategy, str) else strategy
        self.max_tracked = MAX_TRACKED
        self._states: OrderedDict[str, OrchestrationState] = OrderedDict()

    @property
    def repository(self) -> WorkflowRecordRepository:
        return self._repository

    def state_of(self, correlation_token: str) -> OrchestrationState:
        """Current state of the orchestration owning ``correlation_token``."""
        return self._states.get(correlation_token, OrchestrationState.IDLE)

    def _transition(self, correlation_token: str, state: OrchestrationState) -> None:
        self._states[correlation_token] = state
        self._states.move_to_end(correlation_token)
        self._forget_finished()
        logger.info(f"correlation_token={correlation_token} -> {state.value}")

    def _forget_finished(self) -> None:
        """Drop the oldest finished orchestrations beyond ``max_tracked``."""
        excess = len(self._states) - self.max_tracked
        if excess <= 0:
            return
        finished = [
            token
            for token, state in self._states.items()
            if state in (OrchestrationState.COMPLETED, OrchestrationState.FAILED)
        ]
        for token in finished[:excess]:
            del self._states[token]

    def _scope(self, scope: Scope | str | None) -> Scope:
        scope = scope or self.config.scope
        if scope is None:
            raise ValueError("No scope given and none configured")
        return scope if isinstance(scope, Scope) else Scope.parse(scope)

    async def run(
        self,
        scope: Scope | str | None = None,
        workflow_ref: Optional[str] = None,
        correlation_token: Optional[str] = None,
        inputs: Optional[Dict[str, Any]] = None,
        sink: str | Path | None = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> OrchestrationResult:
        """Run the full dispatch, correlate, wait and download sequence.

        Raises the typed error of whichever step failed after recording the
        failure against the correlation token.
        """
        scope = self._scope(scope)
        workflow_ref = workflow_ref or self.config.workflow_ref
        if not workflow_ref:
            raise ValueError("No workflow_ref given and none configured")
        correlation_token = correlation_token or new_correlation_token()

        await self._repository.create_record(
            correlation_token, scope=str(scope), workflow_ref=workflow_ref
        )
        self._transition(correlation_token, OrchestrationState.IDLE)

        try:
            await self.dispatcher.dispatch(scope, workflow_ref, correlation_token, inputs)
        except RunbeaconError as e:
            await self._fail(correlation_token, e)
            raise
        self._transition(correlation_token, OrchestrationState.DISPATCHED)

        return await self._follow(scope, correlation_token, sink, cancel)

    async def resume(
        self,
        correlation_token: str,
        scope: Scope | str | None = None,
        sink: str | Path | None = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> OrchestrationResult:
        """Pick up an already dispatched run from its correlation token alone."""
        scope = self._scope(scope)
        await self._repository.create_record(correlation_token, scope=str(scope))
        self._transition(correlation_token, OrchestrationState.DISPATCHED)
        return await self._follow(scope, correlation_token, sink, cancel)

    async def _follow(
        self,
        scope: Scope,
        correlation_token: str,
        sink: str | Path | None,
        cancel: Optional[asyncio.Event],
    ) -> OrchestrationResult:
        try:
            handle = await self._correlate(scope, correlation_token, cancel)
        except WaitCancelled as e:
            self._transition(correlation_token, OrchestrationState.FAILED)
            logger.error(f"Stopped correlating correlation_token={correlation_token}: {e}")
            raise
        except RunbeaconError as e:
            await self._fail(correlation_token, e)
            raise
        await self._repository.mark_resolved(correlation_token, handle.run_id)
        self._transition(correlation_token, OrchestrationState.CORRELATED)

        self._transition(correlation_token, OrchestrationState.POLLING)
        try:
            status = await self.waiter.await_completion(
                scope,
                handle,
                poll_interval=self.config.poll_interval,
                timeout=self.config.timeout,
                cancel=cancel,
            )
        except (WaitTimeout, WaitCancelled) as e:
            # The run may still finish; leave the record pending for a re-query.
            self._transition(correlation_token, OrchestrationState.FAILED)
            logger.error(f"Stopped waiting for correlation_token={correlation_token}: {e}")
            raise
        except RunbeaconError as e:
            await self._fail(correlation_token, e)
            raise

        await self._repository.mark_completed(correlation_token, status.conclusion)
        self._transition(correlation_token, OrchestrationState.COMPLETED)
        result = OrchestrationResult(
            correlation_token=correlation_token,
            state=OrchestrationState.COMPLETED,
            run_handle=handle,
            status=status,
        )

        sink = sink or self.config.artifact_sink
        if sink:
            try:
                path = await self.fetcher.fetch(
                    scope, handle, sink, name=self.config.artifact_name
                )
                result.artifact_path = str(path)
            except ArtifactDownloadError as e:
                result.artifact_error = str(e)
        return result

    async def _correlate(
        self, scope: Scope, correlation_token: str, cancel: Optional[asyncio.Event]
    ) -> RunHandle:
        attempts = self.config.correlation_attempts
        for attempt in range(attempts):
            if cancel is not None and cancel.is_set():
                raise WaitCancelled(
                    f"Correlation of {correlation_token} cancelled", correlation_token
                )
            try:
                return await self.correlator.resolve_run_id(
                    scope, correlation_token, self.strategy
                )
            except (CorrelationNotFound, ProviderError) as e:
                if attempt + 1 >= attempts:
                    raise
                logger.info(
                    f"Correlation attempt {attempt + 1}/{attempts} for "
                    f"correlation_token={correlation_token} failed: {e}; retrying"
                )
                if await schedule_retry(
                    attempt, base=self.config.correlation_backoff_base, cancel=cancel
                ):
                    raise WaitCancelled(
                        f"Correlation of {correlation_token} cancelled",
                        correlation_token,
                    )
        raise CorrelationNotFound(
            f"No run found for correlation token {correlation_token}", correlation_token
        )

    async def _fail(self, correlation_token: str, error: Exception) -> None:
        self._transition(correlation_token, OrchestrationState.FAILED)
        await self._repository.mark_failed(
            correlation_token, f"{type(error).__name__}: {error}"
        )
        logger.error(
            f"Orchestration failed for correlation_token={correlation_token}: {error}"
        )
