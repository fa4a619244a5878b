"""Pydantic models for engine settings."""

from typing import Optional
from pydantic import BaseModel, Field, field_validator

from kubeship.kube.wait import WaitStrategy


class EngineSettings(BaseModel):
    """Settings shared by every operation of an orchestrator."""

    namespace: str = Field("default", min_length=1, description="Namespace releases are deployed to")
    max_history: int = Field(
        10, ge=0, description="Maximum release versions kept per name (0 = unlimited)"
    )
    timeout: float = Field(300.0, gt=0, description="Default wait and hook timeout in seconds")
    wait_strategy: WaitStrategy = Field(
        WaitStrategy.HOOK_ONLY, description="Default readiness wait strategy"
    )
    poll_interval: float = Field(2.0, gt=0, description="Seconds between polls for polling waits")
    kube_version: Optional[str] = Field(
        None, description="Platform version assumed in client-only mode"
    )
    log_level: str = Field("info", pattern="^(debug|info|warning|error)$")
    log_dir: Optional[str] = Field(None, description="Directory for JSON log files, none when unset")

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Namespace names are lowercase DNS labels."""
        if v != v.lower() or " " in v:
            raise ValueError("namespace must be a lowercase name without spaces")
        return v

    @field_validator("wait_strategy", mode="before")
    @classmethod
    def parse_wait_strategy(cls, v):
        """Accept strategy names as written in YAML."""
        if isinstance(v, str):
            return WaitStrategy(v.strip().lower())
        return v
