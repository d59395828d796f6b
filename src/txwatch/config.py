"""Application configuration using pydantic-settings.

Endpoints for the layer-2 node and the settlement-layer node, plus the
timing knobs of the watch engine.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # API
    # ======================
    api_host: str = Field(default="0.0.0.0", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    dry_run: bool = Field(
        default=True, description="Use simulated notifier/refresher (no node access)"
    )

    # ======================
    # Layer-2 node
    # ======================
    zksync_api_url: str = Field(
        default="https://api.zksync.io/jsrpc", description="zkSync JSON-RPC endpoint"
    )
    zksync_rest_url: str = Field(
        default="https://api.zksync.io/api/v0.1", description="zkSync REST API base"
    )
    account_address: Optional[str] = Field(
        default=None, description="Account whose balances and history are refreshed"
    )
    history_page_size: int = Field(default=25, description="Transactions per history page")

    # ======================
    # Settlement layer
    # ======================
    eth_rpc_url: str = Field(
        default="https://eth.llamarpc.com", description="Ethereum RPC URL"
    )

    # ======================
    # Watch engine timing
    # ======================
    refresh_delay: float = Field(
        default=0.5, description="Debounce window for balance refresh (seconds)"
    )
    poll_interval: float = Field(
        default=2.0, description="Seconds between milestone/receipt polls"
    )
    milestone_timeout: float = Field(
        default=0.0, description="Give up waiting for a milestone after N seconds (0 = never)"
    )
    receipt_timeout: float = Field(
        default=0.0, description="Give up waiting for a deposit receipt after N seconds (0 = never)"
    )
    rpc_timeout: float = Field(default=15.0, description="HTTP timeout for node requests")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "nodes": {
                "zksync": self._redact_url(self.zksync_api_url),
                "zksync_rest": self._redact_url(self.zksync_rest_url),
                "eth": self._redact_url(self.eth_rpc_url),
            },
            "account_configured": bool(self.account_address),
            "timing": {
                "refresh_delay": self.refresh_delay,
                "poll_interval": self.poll_interval,
                "milestone_timeout": self.milestone_timeout,
                "receipt_timeout": self.receipt_timeout,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials embedded in a node URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
