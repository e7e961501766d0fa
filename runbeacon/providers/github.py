"""GitHub Actions provider backed by httpx."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx
from pydantic import ValidationError

from ..constants import DEFAULT_BASE_URL
from ..contracts import Artifact, Scope, WorkflowRun
from ..exceptions import DispatchError, ProviderError
from .base import BaseProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GitHubProvider(BaseProvider):
    """Talk to the GitHub Actions REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._token = token
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url, headers=self._headers(), timeout=self.timeout
            )
            self._owns_client = True

    async def disconnect(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            await self.connect()
        kwargs.setdefault("headers", self._headers())
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{method} {path} returned {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{method} {path} failed: {e}") from e
        return response

    @staticmethod
    def _decode(response: httpx.Response, parse: Callable[[Any], T]) -> T:
        """Parse a JSON body, reporting unusable payloads as provider errors."""
        try:
            return parse(response.json())
        except (ValueError, TypeError, AttributeError, ValidationError) as e:
            raise ProviderError(
                f"{response.request.method} {response.request.url.path} "
                f"returned an unusable body: {e}",
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _repo_path(scope: Scope) -> str:
        return f"/repos/{scope.owner}/{scope.repo}/actions"

    async def dispatch(
        self, scope: Scope, workflow_ref: str, ref: str, inputs: Dict[str, Any]
    ) -> None:
        path = f"{self._repo_path(scope)}/workflows/{workflow_ref}/dispatches"
        try:
            await self._request("POST", path, json={"ref": ref, "inputs": inputs})
        except ProviderError as e:
            raise DispatchError(
                f"Dispatch of {workflow_ref} on {scope} rejected: {e}"
            ) from e
        logger.debug(f"Dispatched {workflow_ref} on {scope}@{ref}")

    async def list_runs(
        self,
        scope: Scope,
        branch: Optional[str] = None,
        per_page: int = 100,
        label: Optional[str] = None,
    ) -> List[WorkflowRun]:
        params: Dict[str, Any] = {"per_page": per_page}
        if branch:
            params["branch"] = branch
        if label:
            params["labels"] = label
        response = await self._request(
            "GET", f"{self._repo_path(scope)}/runs", params=params
        )
        return self._decode(
            response,
            lambda body: [
                WorkflowRun.model_validate(run) for run in body.get("workflow_runs", [])
            ],
        )

    async def add_labels(self, scope: Scope, run_id: int, labels: List[str]) -> None:
        await self._request(
            "POST",
            f"{self._repo_path(scope)}/runs/{run_id}/labels",
            json={"labels": labels},
        )

    async def get_run(self, scope: Scope, run_id: int) -> WorkflowRun:
        response = await self._request("GET", f"{self._repo_path(scope)}/runs/{run_id}")
        return self._decode(response, WorkflowRun.model_validate)

    async def list_artifacts(self, scope: Scope, run_id: int) -> List[Artifact]:
        response = await self._request(
            "GET", f"{self._repo_path(scope)}/runs/{run_id}/artifacts"
        )
        return self._decode(
            response,
            lambda body: [
                Artifact.model_validate(item) for item in body.get("artifacts", [])
            ],
        )

    async def download_artifact(self, scope: Scope, artifact_id: int) -> bytes:
        response = await self._request(
            "GET",
            f"{self._repo_path(scope)}/artifacts/{artifact_id}/zip",
            follow_redirects=True,
        )
        return response.content
