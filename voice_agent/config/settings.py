"""
Environment-based configuration for the relay server.

The relay reads its configuration exactly once at process start and passes the
resulting RelayConfig into the components that need it. Nothing in the relay core
reads environment variables directly.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import dotenv

from voice_agent.config.constants import DEFAULT_LIVE_MODEL


def load_env_file(path: Path = Path(".") / ".env") -> None:
    """Load environment variables from a .env file if it exists."""
    if path.exists():
        dotenv.load_dotenv(path)


def _split_csv(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class RelayConfig:
    """
    Process-wide relay configuration.

    Attributes:
        api_key: Credential for the upstream Live API (None disables session creation)
        model: Upstream Live model name
        allowed_origins: Exact origins allowed to open the relay WebSocket
        allowed_origin_suffixes: Host suffixes (e.g. ".repl.co") also allowed
        host: Interface to bind
        port: Port to listen on
        store_backend: "memory" or "redis"
        redis_url: Connection URL for the redis store backend
        frontend_dist_dir: Optional directory with a built frontend to serve
    """

    api_key: Optional[str] = None
    model: str = DEFAULT_LIVE_MODEL
    allowed_origins: Tuple[str, ...] = ("http://localhost:3000",)
    allowed_origin_suffixes: Tuple[str, ...] = field(default_factory=tuple)
    host: str = "0.0.0.0"
    port: int = 3001
    store_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    frontend_dist_dir: Optional[str] = None

    @staticmethod
    def from_env() -> "RelayConfig":
        """Build the configuration from environment variables."""
        frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")
        origins = (frontend_url,) + tuple(
            origin for origin in _split_csv(os.getenv("ALLOWED_ORIGINS")) if origin != frontend_url
        )
        return RelayConfig(
            api_key=os.getenv("GEMINI_API_KEY") or None,
            model=os.getenv("GEMINI_LIVE_MODEL", DEFAULT_LIVE_MODEL),
            allowed_origins=origins,
            allowed_origin_suffixes=_split_csv(os.getenv("ALLOWED_ORIGIN_SUFFIXES")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3001")),
            store_backend=os.getenv("USER_STORE_BACKEND", "memory").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            frontend_dist_dir=os.getenv("FRONTEND_DIST_DIR") or None,
        )

    def is_origin_allowed(self, origin: Optional[str]) -> bool:
        """
        Check a WebSocket Origin header against the allowed origins.

        Connections without an Origin header (non-browser clients) are allowed.
        """
        if not origin:
            return True
        if origin in self.allowed_origins:
            return True
        return any(origin.endswith(suffix) for suffix in self.allowed_origin_suffixes)
