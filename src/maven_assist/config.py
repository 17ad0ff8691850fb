"""Runtime configuration module.

Configuration is read from environment variables.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from maven_assist.cache import DEFAULT_TTL_SECONDS
from maven_assist.sizes import DEFAULT_TIMEOUT_SECONDS, default_workers


def _default_local_repo() -> Path:
    return Path.home() / ".m2" / "repository"


def _default_mvn() -> str:
    return "mvn.cmd" if os.name == "nt" else "mvn"


@dataclass
class AssistConfig:
    """Maven Assist configuration container.

    Attributes:
        local_repo: Local Maven repository holding resolved jars.
        cache_ttl: Seconds an analysis result stays valid.
        size_timeout: Per-lookup deadline for parallel jar size reads.
        size_workers: Worker threads used for jar size reads.
        mvn_command: Maven executable used by the default collaborators.
        log_level: Logging level name for the CLI and web app.
    """

    local_repo: Path = field(default_factory=_default_local_repo)
    cache_ttl: float = DEFAULT_TTL_SECONDS
    size_timeout: float = DEFAULT_TIMEOUT_SECONDS
    size_workers: int = field(default_factory=default_workers)
    mvn_command: str = field(default_factory=_default_mvn)
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> "AssistConfig":
        """Create configuration from environment variables.

        Environment variables:
            MAVEN_ASSIST_LOCAL_REPO: Local repository (default: "~/.m2/repository")
            MAVEN_ASSIST_CACHE_TTL: Result cache TTL in seconds (default: 300)
            MAVEN_ASSIST_SIZE_TIMEOUT: Jar size lookup deadline in seconds (default: 5)
            MAVEN_ASSIST_SIZE_WORKERS: Jar size worker threads (default: half the CPUs, min 2)
            MAVEN_ASSIST_MVN: Maven executable (default: "mvn", "mvn.cmd" on Windows)
            MAVEN_ASSIST_LOG_LEVEL: Logging level (default: "WARNING")
        """
        local_repo = os.getenv("MAVEN_ASSIST_LOCAL_REPO")
        workers = os.getenv("MAVEN_ASSIST_SIZE_WORKERS")

        return cls(
            local_repo=Path(local_repo).expanduser() if local_repo else _default_local_repo(),
            cache_ttl=float(os.getenv("MAVEN_ASSIST_CACHE_TTL", DEFAULT_TTL_SECONDS)),
            size_timeout=float(os.getenv("MAVEN_ASSIST_SIZE_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)),
            size_workers=int(workers) if workers else default_workers(),
            mvn_command=os.getenv("MAVEN_ASSIST_MVN") or _default_mvn(),
            log_level=os.getenv("MAVEN_ASSIST_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> None:
        """Validate the configuration.

        Raises:
            ValueError: If a setting is out of range.
        """
        if self.cache_ttl <= 0:
            raise ValueError("MAVEN_ASSIST_CACHE_TTL must be positive")
        if self.size_timeout <= 0:
            raise ValueError("MAVEN_ASSIST_SIZE_TIMEOUT must be positive")
        if self.size_workers < 1:
            raise ValueError("MAVEN_ASSIST_SIZE_WORKERS must be at least 1")
        if not self.mvn_command:
            raise ValueError("MAVEN_ASSIST_MVN must not be empty")
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(f"MAVEN_ASSIST_LOG_LEVEL is not a logging level: {self.log_level}")
