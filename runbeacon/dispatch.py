"""Workflow dispatcher for runbeacon."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .constants import DEFAULT_BRANCH, DEFAULT_TOKEN_INPUT
from .contracts import Scope
from .exceptions import DispatchError, RunbeaconError
from .providers import BaseProvider

logger = logging.getLogger(__name__)


class WorkflowDispatcher:
    """Service responsible for triggering workflow runs.

    The trigger call is attempted exactly once; retrying a rejected dispatch
    is left to the caller.
    """

    def __init__(
        self,
        provider: BaseProvider,
        reference_branch: str = DEFAULT_BRANCH,
        token_input: str = DEFAULT_TOKEN_INPUT,
    ) -> None:
        self._provider = provider
        self.reference_branch = reference_branch
        self.token_input = token_input

    async def dispatch(
        self,
        scope: Scope,
        workflow_ref: str,
        correlation_token: str,
        inputs: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Trigger ``workflow_ref`` carrying ``correlation_token`` as an input.

        Args:
            scope: Repository that owns the workflow.
            workflow_ref: Workflow file name or id.
            correlation_token: Token the triggered run re-emits for correlation.
            inputs: Extra workflow inputs merged alongside the token.

        Raises:
            DispatchError: If the provider rejects or never receives the request.
        """
        payload = dict(inputs or {})
        payload[self.token_input] = correlation_token
        try:
            await self._provider.dispatch(
                scope, workflow_ref, self.reference_branch, payload
            )
        except DispatchError as e:
            e.correlation_token = correlation_token
            logger.error(
                f"Dispatch of {workflow_ref} failed for correlation_token={correlation_token}: {e}"
            )
            raise
        except RunbeaconError as e:
            logger.error(
                f"Dispatch of {workflow_ref} failed for correlation_token={correlation_token}: {e}"
            )
            raise DispatchError(str(e), correlation_token) from e
        logger.info(
            f"Dispatched {workflow_ref} on {scope}@{self.reference_branch} "
            f"for correlation_token={correlation_token}"
        )
