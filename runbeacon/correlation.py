"""Resolve correlation tokens to provider run identifiers.

Dispatching a workflow does not return the id of the run it creates, so the
run has to be found afterwards in the provider's listing. Each strategy
below corresponds to one way the triggered workflow can echo the token back.
"""

from __future__ import annotations

import abc
import logging
from typing import Dict, List, Type

from .constants import DEFAULT_BRANCH, DEFAULT_LOOKBACK
from .contracts import RunHandle, Scope, WorkflowRun, derive_label
from .exceptions import CorrelationAmbiguous, CorrelationNotFound
from .providers import BaseProvider

logger = logging.getLogger(__name__)


class CorrelationStrategy(metaclass=abc.ABCMeta):
    """Find the runs in a listing that belong to a correlation token."""

    name: str = ""

    @abc.abstractmethod
    async def candidates(
        self,
        provider: BaseProvider,
        scope: Scope,
        correlation_token: str,
        branch: str,
        lookback: int,
    ) -> List[WorkflowRun]:
        """Return matching runs in provider listing order (newest first)."""
        raise NotImplementedError

    async def claim(
        self, provider: BaseProvider, scope: Scope, run: WorkflowRun, correlation_token: str
    ) -> None:
        """Hook run once the winning candidate is chosen."""
        pass


class DirectLabelStrategy(CorrelationStrategy):
    """Match runs whose label the workflow set to ``unique-id-<token>``."""

    name = "direct-label"

    async def candidates(self, provider, scope, correlation_token, branch, lookback):
        label = derive_label(correlation_token)
        runs = await provider.list_runs(
            scope, branch=branch, per_page=lookback, label=label
        )
        # The server-side filter is advisory; some providers ignore it.
        return [run for run in runs if run.has_label(label)]


class CommitMessageStrategy(CorrelationStrategy):
    """Match runs whose head commit message contains the token verbatim."""

    name = "commit-message"

    async def candidates(self, provider, scope, correlation_token, branch, lookback):
        runs = await provider.list_runs(scope, branch=branch, per_page=lookback)
        return [run for run in runs if correlation_token in run.commit_message]


class LabelStrategy(CorrelationStrategy):
    """Claim the newest unlabeled run by labelling it with the token.

    This is a heuristic kept for workflows that cannot echo the token
    themselves. Two dispatches racing each other can each claim the other's
    run, so prefer ``direct-label`` or ``commit-message`` whenever the
    workflow definition allows it. A run already carrying the token's label
    is returned as is, which makes re-resolving a claimed token stable.
    """

    name = "label"

    async def candidates(self, provider, scope, correlation_token, branch, lookback):
        logger.warning(
            f"Resolving correlation_token={correlation_token} with the unlabeled-run "
            "heuristic; concurrent dispatches may be mis-attributed"
        )
        label = derive_label(correlation_token)
        runs = await provider.list_runs(scope, branch=branch, per_page=lookback)
        claimed = [run for run in runs if run.has_label(label)]
        if claimed:
            return claimed
        unlabeled = [run for run in runs if not run.labels]
        return unlabeled[:1]

    async def claim(self, provider, scope, run, correlation_token):
        label = derive_label(correlation_token)
        if not run.has_label(label):
            await provider.add_labels(scope, run.id, [label])
            logger.info(
                f"Labelled run {run.id} as {label} for correlation_token={correlation_token}"
            )


STRATEGIES: Dict[str, Type[CorrelationStrategy]] = {
    LabelStrategy.name: LabelStrategy,
    DirectLabelStrategy.name: DirectLabelStrategy,
    CommitMessageStrategy.name: CommitMessageStrategy,
}


def get_strategy(name: str) -> CorrelationStrategy:
    """Instantiate a correlation strategy by name."""
    try:
        return STRATEGIES[name.lower()]()
    except KeyError:
        raise ValueError(f"Unsupported correlation strategy: {name}") from None


def select_latest(runs: List[WorkflowRun]) -> WorkflowRun:
    """Pick the most recently created run; ties keep listing order."""
    best = runs[0]
    for run in runs[1:]:
        if run.created_at is None:
            continue
        if best.created_at is None or run.created_at > best.created_at:
            best = run
    return best


class RunCorrelator:
    """Resolve a correlation token to the run it triggered."""

    def __init__(
        self,
        provider: BaseProvider,
        reference_branch: str = DEFAULT_BRANCH,
        lookback: int = DEFAULT_LOOKBACK,
        reject_ambiguous: bool = False,
    ) -> None:
        self._provider = provider
        self.reference_branch = reference_branch
        self.lookback = lookback
        self.reject_ambiguous = reject_ambiguous

    async def resolve_run_id(
        self,
        scope: Scope,
        correlation_token: str,
        strategy: CorrelationStrategy | str = "direct-label",
    ) -> RunHandle:
        """Inspect one listing page and return the handle of the matching run.

        Raises:
            CorrelationNotFound: No run in the lookback window matches.
            CorrelationAmbiguous: Several runs match and ``reject_ambiguous``
                is set.
            ProviderError: The listing request itself failed.
        """
        if isinstance(strategy, str):
            strategy = get_strategy(strategy)

        matches = await strategy.candidates(
            self._provider,
            scope,
            correlation_token,
            self.reference_branch,
            self.lookback,
        )
        if not matches:
            logger.info(
                f"No run matched correlation_token={correlation_token} "
                f"in the last {self.lookback} runs on {self.reference_branch}"
            )
            raise CorrelationNotFound(
                f"No run found for correlation token {correlation_token}",
                correlation_token,
            )

        if len(matches) > 1:
            ids = [run.id for run in matches]
            if self.reject_ambiguous:
                logger.error(
                    f"Runs {ids} all match correlation_token={correlation_token}"
                )
                raise CorrelationAmbiguous(
                    f"{len(ids)} runs match correlation token {correlation_token}",
                    candidates=ids,
                    correlation_token=correlation_token,
                )
            logger.warning(
                f"Runs {ids} match correlation_token={correlation_token}; "
                "choosing the most recently created"
            )

        run = select_latest(matches)
        await strategy.claim(self._provider, scope, run, correlation_token)
        logger.info(
            f"Resolved correlation_token={correlation_token} to run {run.id} "
            f"via {strategy.name}"
        )
        return RunHandle(run_id=run.id, correlation_token=correlation_token)

