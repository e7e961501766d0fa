from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BASE_URL,
    DEFAULT_BRANCH,
    DEFAULT_LOOKBACK,
    DEFAULT_TOKEN_INPUT,
)

StrategyName = Literal["label", "direct-label", "commit-message"]


class ProviderConfig(BaseModel):
    """Connection settings for the workflow provider."""

    backend: Literal["github", "inmemory"] = "github"
    base_url: str = DEFAULT_BASE_URL
    token: Optional[str] = None
    request_timeout: float = 30.0


class RunbeaconConfig(BaseModel):
    """Top-level configuration model."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    scope: Optional[str] = None
    workflow_ref: Optional[str] = None
    reference_branch: str = DEFAULT_BRANCH
    token_input: str = DEFAULT_TOKEN_INPUT
    poll_interval: float = Field(default=5.0, gt=0)
    timeout: float = Field(default=1800.0, gt=0)
    correlation_strategy: StrategyName = "direct-label"
    lookback: int = Field(default=DEFAULT_LOOKBACK, ge=1, le=100)
    reject_ambiguous: bool = False
    correlation_attempts: int = Field(default=5, ge=1)
    correlation_backoff_base: float = Field(default=2.0, gt=0)
    max_consecutive_poll_failures: int = Field(default=3, ge=0)
    artifact_name: Optional[str] = None
    artifact_sink: Optional[str] = None


def load_config(path: Optional[str] = None) -> RunbeaconConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to RUNBEACON_CONFIG env
            variable or 'runbeacon.yaml' in the current directory.
    """

    config_path = path or os.getenv("RUNBEACON_CONFIG", "runbeacon.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = RunbeaconConfig(**data)
    else:
        config = RunbeaconConfig()

    env_token = os.getenv("RUNBEACON_TOKEN") or os.getenv("GITHUB_TOKEN")
    if env_token:
        config.provider.token = env_token
    env_backend = os.getenv("RUNBEACON_PROVIDER")
    if env_backend:
        config.provider = ProviderConfig(
            **{**config.provider.model_dump(), "backend": env_backend.lower()}
        )
    return config
