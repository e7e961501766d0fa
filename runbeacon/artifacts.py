"""Artifact retrieval for completed runs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .contracts import RunHandle, Scope
from .exceptions import ArtifactDownloadError
from .providers import BaseProvider

logger = logging.getLogger(__name__)


class ArtifactFetcher:
    """Download a run's artifact archive and write it to a sink path."""

    def __init__(self, provider: BaseProvider) -> None:
        self._provider = provider

    async def fetch(
        self,
        scope: Scope,
        run_handle: RunHandle,
        sink: str | Path,
        name: Optional[str] = None,
    ) -> Path:
        """Write the first usable artifact of the run to ``sink``.

        When ``name`` is given only an artifact with that name qualifies.
        The payload is written unmodified. Every failure of this step is
        raised as :class:`ArtifactDownloadError`.
        """
        token = run_handle.correlation_token
        try:
            return await self._fetch(scope, run_handle, Path(sink), name)
        except ArtifactDownloadError:
            raise
        except Exception as e:
            logger.error(
                f"Artifact download for run {run_handle.run_id} failed for "
                f"correlation_token={token}: {e}"
            )
            raise ArtifactDownloadError(
                f"Artifact download for run {run_handle.run_id} failed: {e}", token
            ) from e

    async def _fetch(
        self, scope: Scope, run_handle: RunHandle, path: Path, name: Optional[str]
    ) -> Path:
        token = run_handle.correlation_token
        artifacts = await self._provider.list_artifacts(scope, run_handle.run_id)
        usable = [
            a for a in artifacts if not a.expired and (name is None or a.name == name)
        ]
        if not usable:
            wanted = f" named {name!r}" if name else ""
            logger.error(
                f"Run {run_handle.run_id} has no artifact{wanted} "
                f"for correlation_token={token}"
            )
            raise ArtifactDownloadError(
                f"Run {run_handle.run_id} has no downloadable artifact{wanted}", token
            )

        artifact = usable[0]
        payload = await self._provider.download_artifact(scope, artifact.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)

        logger.info(
            f"Saved artifact {artifact.name} ({len(payload)} bytes) to {path} "
            f"for correlation_token={token}"
        )
        return path
