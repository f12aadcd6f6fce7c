"""SDK settings loaded from keyword arguments, environment variables and config files.

Configuration is loaded from (highest priority first):
1. Keyword arguments and environment variables (prefix: ``GIVEBIT_``)
2. YAML config file (``config_path`` or ``GIVEBIT_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SDK_VERSION = "1.0.3"

# Channel and polling defaults (seconds)
RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY = 3.0
HEARTBEAT_INTERVAL = 30.0
POLL_INTERVAL = 5.0
REQUEST_TIMEOUT = 15.0
HTTP_TIMEOUT = 30.0


class GiveBitMode(enum.StrEnum):
    """Named backend environment."""

    TESTNET = "testnet"
    MAINNET = "mainnet"


@dataclass(frozen=True)
class NetworkProfile:
    """Endpoint pair and chain pinned by a named environment."""

    api_endpoint: str
    ws_endpoint: str
    chain_id: int
    contract_address: str


NETWORKS: dict[GiveBitMode, NetworkProfile] = {
    GiveBitMode.TESTNET: NetworkProfile(
        api_endpoint="https://testnet.zidanmutaqin.dev/api",
        ws_endpoint="wss://testnet.zidanmutaqin.dev/api/ws",
        chain_id=17000,  # Ethereum Holesky
        contract_address="0x5081968D6D4a1124D0B61C5E01F60dF928110ECE",
    ),
    GiveBitMode.MAINNET: NetworkProfile(
        api_endpoint="https://mainnet.zidanmutaqin.dev/api",
        ws_endpoint="wss://mainnet.zidanmutaqin.dev/api/ws",
        chain_id=1,
        contract_address="0x",  # populated at runtime
    ),
}


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class GiveBitConfig(BaseSettings):
    """Top-level SDK configuration.

    Loads settings from environment variables (``GIVEBIT_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="GIVEBIT_",
        case_sensitive=False,
    )

    project_id: str = ""
    api_key: str = ""
    mode: GiveBitMode = Field(
        default=GiveBitMode.TESTNET,
        description="Named environment: testnet or mainnet",
    )
    ws_endpoint: str = Field(default="", description="Overrides the environment's WebSocket URL")
    api_endpoint: str = Field(default="", description="Overrides the environment's REST base URL")
    config_path: str = ""

    reconnect_attempts: int = Field(default=RECONNECT_ATTEMPTS, ge=0)
    reconnect_delay: float = Field(default=RECONNECT_DELAY, ge=0)
    heartbeat_interval: float = Field(default=HEARTBEAT_INTERVAL, gt=0)
    request_timeout: float = Field(default=REQUEST_TIMEOUT, gt=0)
    poll_interval: float = Field(default=POLL_INTERVAL, gt=0)
    http_timeout: float = Field(default=HTTP_TIMEOUT, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the explicit values."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``GiveBitConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))

    # ------------------------------------------------------------------
    # Resolved endpoints
    # ------------------------------------------------------------------

    @property
    def network(self) -> NetworkProfile:
        """The named environment's pinned profile."""
        return NETWORKS[self.mode]

    @property
    def resolved_ws_endpoint(self) -> str:
        """WebSocket URL, honouring an explicit override."""
        return self.ws_endpoint or self.network.ws_endpoint

    @property
    def resolved_api_endpoint(self) -> str:
        """REST base URL, honouring an explicit override."""
        return self.api_endpoint or self.network.api_endpoint

    @property
    def chain_id(self) -> int:
        return self.network.chain_id

    @property
    def contract_address(self) -> str:
        return self.network.contract_address
