"""Provider factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import RunbeaconConfig, load_config
from .base import BaseProvider
from .github import GitHubProvider
from .inmemory import InMemoryProvider


def get_provider(
    backend: Optional[str] = None, config: Optional[RunbeaconConfig] = None
) -> BaseProvider:
    """Factory function to get the configured provider."""

    config = config or load_config()
    backend = (
        backend or os.getenv("RUNBEACON_PROVIDER") or config.provider.backend
    ).lower()

    if backend == "github":
        provider_conf = config.provider
        return GitHubProvider(
            token=provider_conf.token,
            base_url=provider_conf.base_url,
            timeout=provider_conf.request_timeout,
        )
    elif backend == "inmemory":
        return InMemoryProvider(token_input=config.token_input)
    else:
        raise ValueError(f"Unsupported provider backend: {backend}")


__all__ = ["BaseProvider", "GitHubProvider", "InMemoryProvider", "get_provider"]
