"""Runtime gateway configuration and its lock-guarded store."""

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError

from src.core.models import RetryPolicy, UpstreamTarget
from src.utils.rwlock import AsyncRWLock

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300
DEFAULT_RETRY_LIMIT = 10
RETRY_DELAY_SECONDS = 2.0


class GatewayConfig(BaseModel):
    """Gateway configuration, editable through ``/api/config``.

    Attributes:
        gemini_proxy_url: Base URL of the primary upstream
        fallback_proxy_url: Base URL of the fallback upstream, if any
        api_key: Bearer credential sent to both upstreams
        admin_token: Token for administrative clients
        storage_path: Directory generated images are stored in
        port: Port the server listens on
        timeout: Per-attempt upstream timeout in seconds
        retry_limit: Attempts per upstream target
    """

    gemini_proxy_url: str = "http://127.0.0.1:8045/v1"
    fallback_proxy_url: Optional[str] = None
    api_key: str = ""
    admin_token: str = "admin123"
    storage_path: str = "./storage"
    port: int = 3000
    timeout: int = Field(default=DEFAULT_TIMEOUT, gt=0)
    retry_limit: int = Field(default=DEFAULT_RETRY_LIMIT, ge=1)

    def primary_target(self) -> UpstreamTarget:
        """Get the primary upstream target."""
        return UpstreamTarget(base_url=self.gemini_proxy_url, api_key=self.api_key)

    def fallback_target(self) -> Optional[UpstreamTarget]:
        """Get the fallback target, or None if no fallback URL is set."""
        if not self.fallback_proxy_url or not self.fallback_proxy_url.strip():
            return None
        return UpstreamTarget(base_url=self.fallback_proxy_url, api_key=self.api_key)

    def retry_policy(self) -> RetryPolicy:
        """Get the retry policy shared by all targets."""
        return RetryPolicy(
            max_attempts=self.retry_limit,
            timeout=float(self.timeout),
            delay=RETRY_DELAY_SECONDS
        )


@dataclass(frozen=True)
class ConfigSnapshot:
    """Values a generation request copies out of the config."""
    primary: UpstreamTarget
    fallback: Optional[UpstreamTarget]
    storage_path: str
    policy: RetryPolicy


def load_config(path: Union[str, Path]) -> GatewayConfig:
    """Load the gateway config file.

    A missing file is created with default values. An invalid file falls
    back to defaults without being overwritten.

    Args:
        path: Config JSON file

    Returns:
        The loaded configuration
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        config = GatewayConfig()
        try:
            save_config(path, config)
            logger.info(f"Wrote default config to {path}")
        except OSError as e:
            logger.warning(f"Could not write default config to {path}: {e}")
        return config

    try:
        return GatewayConfig.model_validate_json(content)
    except ValidationError as e:
        logger.warning(f"Invalid config file {path}, using defaults: {e}")
        return GatewayConfig()


def save_config(path: Union[str, Path], config: GatewayConfig) -> None:
    """Write the gateway config as pretty-printed JSON.

    Raises:
        OSError: If the file cannot be written
    """
    Path(path).write_text(json.dumps(config.model_dump(), indent=2), encoding="utf-8")


class ConfigStore:
    """Holds the live :class:`GatewayConfig` behind a reader/writer lock.

    Readers copy what they need and release the lock before doing any
    network I/O. Updates replace the whole config at once.
    """

    def __init__(self, config: Optional[GatewayConfig] = None, config_file: Optional[Union[str, Path]] = None):
        self._config = config or GatewayConfig()
        self.config_file = Path(config_file) if config_file else None
        self._lock = AsyncRWLock()

    @classmethod
    def from_file(cls, config_file: Union[str, Path]) -> "ConfigStore":
        """Create a store populated from ``config_file``."""
        return cls(load_config(config_file), config_file)

    def peek(self) -> GatewayConfig:
        """Read the config without locking. Only for startup wiring."""
        return self._config

    async def get(self) -> GatewayConfig:
        """Get a copy of the current config."""
        async with self._lock.read():
            return self._config.model_copy()

    async def snapshot(self) -> ConfigSnapshot:
        """Copy out the values needed for one generation request."""
        async with self._lock.read():
            config = self._config
            return ConfigSnapshot(
                primary=config.primary_target(),
                fallback=config.fallback_target(),
                storage_path=config.storage_path,
                policy=config.retry_policy(),
            )

    async def replace(self, config: GatewayConfig) -> None:
        """Swap in a new config and persist it.

        Raises:
            OSError: If the config file cannot be written
        """
        async with self._lock.write():
            self._config = config.model_copy()
            if self.config_file is not None:
                await asyncio.to_thread(save_config, self.config_file, self._config)
        logger.info("Gateway config updated")
