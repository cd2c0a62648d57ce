"""
Referenda Tester TOML Configuration Loader

Loads the optional reftester.toml with environment variable overrides.

Environment variable mapping:
    [fork] base_port              → REFTESTER_BASE_PORT
    [fork] command                → REFTESTER_CHOPSTICKS_COMMAND
    [polling] block_timeout       → REFTESTER_BLOCK_TIMEOUT
    ...
"""

from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)

BUILD_BLOCK_MODES = ("manual", "batch", "instant")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ForkSettings:
    """[fork] section."""
    command: str = "npx @acala-network/chopsticks@latest"
    host: str = "127.0.0.1"
    base_port: int = 8000
    db: Optional[str] = ".chopsticks-db"
    build_block_mode: str = "manual"
    runtime_log_level: int = 0
    mock_signature_host: bool = True
    allow_unresolved_imports: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ForkSettings":
        return cls(
            command=data.get("command", "npx @acala-network/chopsticks@latest"),
            host=data.get("host", "127.0.0.1"),
            base_port=data.get("base_port", 8000),
            db=data.get("db", ".chopsticks-db") or None,
            build_block_mode=data.get("build_block_mode", "manual"),
            runtime_log_level=data.get("runtime_log_level", 0),
            mock_signature_host=data.get("mock_signature_host", True),
            allow_unresolved_imports=data.get("allow_unresolved_imports", True),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("REFTESTER_CHOPSTICKS_COMMAND"):
            self.command = v
        if v := os.environ.get("REFTESTER_FORK_HOST"):
            self.host = v
        if v := os.environ.get("REFTESTER_BASE_PORT"):
            self.base_port = int(v)
        if v := os.environ.get("REFTESTER_FORK_DB"):
            self.db = v

    @property
    def command_args(self) -> List[str]:
        return shlex.split(self.command)


@dataclass
class PollingSettings:
    """[polling] section. Every wait in the tool is bounded by these values."""
    ready_attempts: int = 10
    ready_delay: float = 0.5
    block_poll_interval: float = 0.1
    block_timeout: float = 10.0
    startup_timeout: float = 180.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PollingSettings":
        return cls(
            ready_attempts=data.get("ready_attempts", 10),
            ready_delay=data.get("ready_delay", 0.5),
            block_poll_interval=data.get("block_poll_interval", 0.1),
            block_timeout=data.get("block_timeout", 10.0),
            startup_timeout=data.get("startup_timeout", 180.0),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("REFTESTER_BLOCK_TIMEOUT"):
            self.block_timeout = float(v)
        if v := os.environ.get("REFTESTER_STARTUP_TIMEOUT"):
            self.startup_timeout = float(v)


@dataclass
class TesterConfig:
    """
    Unified tester configuration.

    Every field has a working default, so a missing config file is fine.
    """
    fork: ForkSettings = field(default_factory=ForkSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)
    log_level: str = "INFO"

    # --- factories --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TesterConfig":
        """Create TesterConfig from a parsed TOML dict."""
        return cls(
            fork=ForkSettings.from_dict(data.get("fork", {})),
            polling=PollingSettings.from_dict(data.get("polling", {})),
            log_level=data.get("logging", {}).get("level", "INFO"),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "TesterConfig":
        """
        Load configuration from a TOML file.

        A missing file yields the defaults (with environment overrides applied).
        """
        path = Path(config_path)
        if not path.exists():
            logger.debug(f"Config file not found: {config_path}, using defaults")
            cfg = cls()
            cfg.apply_env()
            return cfg

        try:
            with open(path, "rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.fork.apply_env()
        self.polling.apply_env()
        if v := os.environ.get("REFTESTER_LOG_LEVEL"):
            self.log_level = v

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if not self.fork.command_args:
            raise ConfigurationError("fork.command must not be empty")
        if not 0 < self.fork.base_port < 65536:
            raise ConfigurationError(f"Invalid fork.base_port: {self.fork.base_port}")
        if self.fork.build_block_mode.lower() not in BUILD_BLOCK_MODES:
            raise ConfigurationError(f"Invalid fork.build_block_mode: {self.fork.build_block_mode}")
        if self.polling.ready_attempts < 1:
            raise ConfigurationError("polling.ready_attempts must be >= 1")
        if self.polling.block_poll_interval <= 0 or self.polling.block_timeout <= 0:
            raise ConfigurationError("polling intervals and timeouts must be positive")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.log_level}")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics)."""
        return {
            "fork": {
                "command": self.fork.command,
                "host": self.fork.host,
                "base_port": self.fork.base_port,
                "db": self.fork.db,
                "build_block_mode": self.fork.build_block_mode,
                "runtime_log_level": self.fork.runtime_log_level,
            },
            "polling": {
                "ready_attempts": self.polling.ready_attempts,
                "ready_delay": self.polling.ready_delay,
                "block_poll_interval": self.polling.block_poll_interval,
                "block_timeout": self.polling.block_timeout,
                "startup_timeout": self.polling.startup_timeout,
            },
            "logging": {"level": self.log_level},
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> TesterConfig:
    """
    Load tester configuration.

    Resolution order:
        1. Explicit *path* argument
        2. REFTESTER_CONFIG env var
        3. ./reftester.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("REFTESTER_CONFIG", "reftester.toml")

    cfg = TesterConfig.from_file(path)
    cfg.validate()
    return cfg
