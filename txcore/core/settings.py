"""
Configuration for the transaction core.

Settings are a plain pydantic model passed to TransactionManager. They
can also be read from the environment (``TXCORE_*`` variables), with an
optional ``.env`` file loaded first.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


class TransactionSettings(BaseModel):
    """
    Behaviour switches for decision and completion.

    Attributes:
        validate_existing_transaction: Reject joins whose isolation or
            read-only declaration conflicts with the existing transaction
        nested_fallback_to_new: Let NESTED suspend and start a new
            transaction when savepoints are unavailable instead of failing
        exclude_suspension_from_timeout: On resume, move the deadline
            forward by the time spent suspended
        default_timeout: Timeout used when an attribute declares -1
        fail_on_unexpected_rollback: Raise UnexpectedRollbackError when a
            successful outcome is rolled back because of rollback-only
        rollback_on_commit_failure: Attempt a rollback after a failed commit
    """

    validate_existing_transaction: bool = Field(default=False)
    nested_fallback_to_new: bool = Field(default=False)
    exclude_suspension_from_timeout: bool = Field(default=False)
    default_timeout: int = Field(default=-1, ge=-1)
    fail_on_unexpected_rollback: bool = Field(default=False)
    rollback_on_commit_failure: bool = Field(default=False)

    model_config = {"frozen": True, "extra": "forbid"}

    @classmethod
    def from_env(
        cls,
        prefix: str = "TXCORE_",
        env_file: Optional[Union[str, Path]] = None,
    ) -> "TransactionSettings":
        """
        Build settings from environment variables.

        Args:
            prefix: Variable prefix, e.g. TXCORE_DEFAULT_TIMEOUT
            env_file: Optional .env file loaded before reading (existing
                variables are not overridden)

        Returns:
            TransactionSettings with defaults for unset variables
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)

        values: dict = {}
        for name, info in cls.model_fields.items():
            key = f"{prefix}{name.upper()}"
            if info.annotation is bool or info.annotation == "bool":
                values[name] = _env_flag(key, info.default)
            elif os.getenv(key) is not None:
                values[name] = int(os.getenv(key))
        return cls(**values)
