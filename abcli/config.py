"""abcli configuration.

Typed configuration for the CLI and the stack tooling it drives. All settings
use Pydantic v2 models so they are validated at construction time and can be
serialised to/from JSON or picked up from ``AB_*`` environment variables.
"""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

# Presence rules identifying the root of an ab_runtime installation.
ROOT_RULES: dict[str, bool] = {
    "assets": True,
    "config": True,
    "data": True,
    "nginx": True,
    "source.docker-compose.yml": True,
}


class StackConfig(BaseModel):
    """Settings for docker stack operations and the lifecycle watcher."""

    default_stack: str = Field(default="ab", min_length=1)
    watch_timeout: float = Field(
        default=600.0, gt=0, description="Seconds to wait for a readiness marker"
    )
    terminate_grace: float = Field(
        default=5.0, ge=0, description="Seconds a terminated log process gets to exit"
    )
    deploy_retries: int = Field(
        default=30, ge=0, description="Deploy retries while the stack network is released"
    )
    deploy_retry_interval: float = Field(default=1.0, ge=0)
    close_poll_interval: float = Field(default=1.0, ge=0)
    log_command: list[str] = Field(default_factory=lambda: ["node", "logs.js"])
    resolved_compose_file: str = Field(default="delme.yml")
    db_compose_file: str = Field(default="dbinit-compose.yml")
    config_compose_file: str = Field(default="config-compose.yml")


class RootConfig(BaseModel):
    """How the root of the runtime installation is located."""

    hop_limit: int = Field(default=20, ge=1)
    rules: dict[str, bool] = Field(default_factory=lambda: dict(ROOT_RULES))


class StackTestConfig(BaseModel):
    """Settings for the ``test`` command's stacks."""

    stack_prefix: str = Field(default="test_")
    api_port: int = Field(default=1337, ge=1, le=65535)
    boot_timeout: int = Field(default=300, ge=1, description="Seconds to wait for the API")
    boot_interval: int = Field(default=1, ge=1)
    compose_files: list[str] = Field(
        default_factory=lambda: ["docker-compose.dev.yml", "./test/setup/test-compose.yml"]
    )


class Config(BaseModel):
    """Global abcli configuration.

    Created once by the CLI entry point and attached to the ``Options`` of the
    invocation, so every step reads the same settings.
    """

    templates_dir: Path | None = Field(default=None)
    verbose: bool = Field(default=False)
    stack: StackConfig = Field(default_factory=StackConfig)
    root: RootConfig = Field(default_factory=RootConfig)
    test: StackTestConfig = Field(default_factory=StackTestConfig)

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a configuration from a JSON file."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            AB_CONFIG (JSON file loaded first), AB_TEMPLATES_DIR, AB_VERBOSE,
            AB_STACK, AB_WATCH_TIMEOUT, AB_LOG_COMMAND, AB_HOP_LIMIT,
            AB_TEST_API_PORT, AB_TEST_BOOT_TIMEOUT.
        """
        if os.environ.get("AB_CONFIG"):
            base = cls.load(Path(os.environ["AB_CONFIG"]))
        else:
            base = cls()

        stack_kwargs: dict[str, Any] = {}
        if os.environ.get("AB_STACK"):
            stack_kwargs["default_stack"] = os.environ["AB_STACK"]
        if os.environ.get("AB_WATCH_TIMEOUT"):
            stack_kwargs["watch_timeout"] = float(os.environ["AB_WATCH_TIMEOUT"])
        if os.environ.get("AB_LOG_COMMAND"):
            stack_kwargs["log_command"] = shlex.split(os.environ["AB_LOG_COMMAND"])

        root_kwargs: dict[str, Any] = {}
        if os.environ.get("AB_HOP_LIMIT"):
            root_kwargs["hop_limit"] = int(os.environ["AB_HOP_LIMIT"])

        test_kwargs: dict[str, Any] = {}
        if os.environ.get("AB_TEST_API_PORT"):
            test_kwargs["api_port"] = int(os.environ["AB_TEST_API_PORT"])
        if os.environ.get("AB_TEST_BOOT_TIMEOUT"):
            test_kwargs["boot_timeout"] = int(os.environ["AB_TEST_BOOT_TIMEOUT"])

        # Re-validate so out-of-range environment values are rejected.
        updates: dict[str, Any] = {
            "stack": StackConfig.model_validate({**base.stack.model_dump(), **stack_kwargs}),
            "root": RootConfig.model_validate({**base.root.model_dump(), **root_kwargs}),
            "test": StackTestConfig.model_validate({**base.test.model_dump(), **test_kwargs}),
        }
        if os.environ.get("AB_TEMPLATES_DIR"):
            updates["templates_dir"] = Path(os.environ["AB_TEMPLATES_DIR"])
        if os.environ.get("AB_VERBOSE"):
            updates["verbose"] = os.environ["AB_VERBOSE"].lower() in ("1", "true", "yes")

        return base.model_copy(update=updates)
