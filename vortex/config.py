"""Runtime configuration read from the environment.

Only values are consumed here; how the environment gets populated (.env files,
platform secrets) is the deployment's concern.
"""

import logging
import os
from dataclasses import dataclass, field

from vortex.llm.schemas import BackendKind

logger = logging.getLogger(__name__)

# Platform-level key for each backend kind
CREDENTIAL_ENV_VARS: dict[BackendKind, str] = {
    BackendKind.GEMINI: "GEMINI_API_KEY",
    BackendKind.MISTRAL: "MISTRAL_API_KEY",
    BackendKind.ANTHROPIC: "ANTHROPIC_API_KEY",
    BackendKind.DEEPSEEK: "DEEPSEEK_API_KEY",
    BackendKind.GROQ: "GROQ_API_KEY",
    BackendKind.OPENAI: "OPENAI_API_KEY",
    BackendKind.OPENROUTER: "OPENROUTER_API_KEY",
}

DEFAULT_PLATFORM_CHAIN: tuple[BackendKind, ...] = (
    BackendKind.GEMINI,
    BackendKind.MISTRAL,
    BackendKind.ANTHROPIC,
    BackendKind.DEEPSEEK,
)

DEFAULT_BACKEND_TIMEOUT_S = 60.0
DEFAULT_DB_POOL_MAX = 5
DEFAULT_DB_CONNECT_TIMEOUT_S = 5


@dataclass
class Settings:
    """Process-wide settings for the orchestrator and the store."""

    database_url: str = ""
    platform_credentials: dict[BackendKind, str] = field(default_factory=dict)
    platform_chain: tuple[BackendKind, ...] = DEFAULT_PLATFORM_CHAIN
    backend_timeout_s: float = DEFAULT_BACKEND_TIMEOUT_S
    db_pool_max: int = DEFAULT_DB_POOL_MAX
    db_connect_timeout_s: int = DEFAULT_DB_CONNECT_TIMEOUT_S

    @property
    def has_database(self) -> bool:
        return bool(self.database_url.strip())

    def credential_for(self, kind: BackendKind) -> str:
        """Platform credential for a backend kind, or '' when not configured."""
        return self.platform_credentials.get(kind, "")

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        credentials = {}
        for kind, env_var in CREDENTIAL_ENV_VARS.items():
            value = os.environ.get(env_var, "").strip()
            if value:
                credentials[kind] = value

        return cls(
            database_url=os.environ.get("DATABASE_URL", "").strip(),
            platform_credentials=credentials,
            platform_chain=parse_platform_chain(os.environ.get("VORTEX_PLATFORM_CHAIN", "")),
            backend_timeout_s=_float_env("VORTEX_BACKEND_TIMEOUT_S", DEFAULT_BACKEND_TIMEOUT_S),
            db_pool_max=int(_float_env("VORTEX_DB_POOL_MAX", DEFAULT_DB_POOL_MAX)),
            db_connect_timeout_s=int(
                _float_env("VORTEX_DB_CONNECT_TIMEOUT_S", DEFAULT_DB_CONNECT_TIMEOUT_S)
            ),
        )


def parse_platform_chain(raw: str) -> tuple[BackendKind, ...]:
    """Parse a comma-separated list of backend kinds.

    Unknown kinds are dropped with a warning, duplicates keep their first
    position. An empty value yields the default chain.
    """
    if not raw.strip():
        return DEFAULT_PLATFORM_CHAIN

    kinds: list[BackendKind] = []
    for token in raw.split(","):
        token = token.strip().lower()
        if not token:
            continue
        try:
            kind = BackendKind(token)
        except ValueError:
            logger.warning(f"Ignoring unknown backend kind in VORTEX_PLATFORM_CHAIN: '{token}'")
            continue
        if kind not in kinds:
            kinds.append(kind)
    return tuple(kinds)


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: '{raw}', using {default}")
        return default
