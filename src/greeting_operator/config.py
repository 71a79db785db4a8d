"""Operator configuration read from environment variables."""

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

from greeting_operator.kinds import MANAGER_NAME

CLEANUP_OWNER_REFERENCES = "ownerReferences"
CLEANUP_FINALIZER = "finalizer"


def _env_flag(name, default="false"):
    return os.getenv(name, default).lower() == "true"


class OperatorSettings(BaseModel):
    """Runtime settings shared by the controller and its workers."""

    log_level: str = "INFO"
    worker_limit: int = Field(default=5, ge=1)
    resync_period: float = Field(default=300.0, gt=0)
    invalid_spec_retry: float = Field(default=900.0, gt=0)
    backoff_base: float = Field(default=1.0, gt=0)
    backoff_max: float = Field(default=300.0, gt=0)
    reconcile_timeout: float = Field(default=60.0, gt=0)
    shutdown_grace_period: float = Field(default=30.0, ge=0)
    field_manager: str = MANAGER_NAME
    force_apply: bool = True
    cleanup_mode: Literal["ownerReferences", "finalizer"] = CLEANUP_OWNER_REFERENCES
    manage_crds: bool = False
    generate_crd_files: bool = False
    posting_enabled: bool = False
    server_timeout: int = 60
    watch_namespace: Optional[str] = None

    class Config:
        frozen = True

    @classmethod
    def from_env(cls):
        """Build settings from the process environment."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            worker_limit=os.getenv("WORKER_LIMIT", "5"),
            resync_period=os.getenv("RESYNC_PERIOD", "300"),
            invalid_spec_retry=os.getenv("INVALID_SPEC_RETRY", "900"),
            backoff_base=os.getenv("BACKOFF_BASE", "1"),
            backoff_max=os.getenv("BACKOFF_MAX", "300"),
            reconcile_timeout=os.getenv("RECONCILE_TIMEOUT", "60"),
            shutdown_grace_period=os.getenv("SHUTDOWN_GRACE_PERIOD", "30"),
            field_manager=os.getenv("FIELD_MANAGER", MANAGER_NAME),
            force_apply=_env_flag("FORCE_APPLY", "true"),
            cleanup_mode=os.getenv("CLEANUP_MODE", CLEANUP_OWNER_REFERENCES),
            manage_crds=_env_flag("MANAGE_CRDS"),
            generate_crd_files=_env_flag("GENERATE_CRD_FILES"),
            posting_enabled=_env_flag("POSTING_ENABLED"),
            server_timeout=os.getenv("SERVER_TIMEOUT", "60"),
            watch_namespace=os.getenv("WATCH_NAMESPACE") or None,
        )

    @property
    def uses_finalizer(self):
        return self.cleanup_mode == CLEANUP_FINALIZER
