# config.py
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ValidationError


def _env_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ValidationError(name, f"expected a number, got {raw!r}") from None


@dataclass
class SimulatorConfig:
    remote_timeout_ms: int = 5000
    remote_grace_seconds: float = 2.0
    rpc_timeout_seconds: float = 10.0
    gas_limit: int = 30_000_000
    max_cached_accounts: int = 10_000
    log_level: str = "INFO"

    @property
    def remote_wait_seconds(self) -> float:
        """Client-side bound on the remote batch call."""
        return self.remote_timeout_ms / 1000 + self.remote_grace_seconds

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SimulatorConfig":
        """Build a config from BALANCE_SIM_* variables and LOG_LEVEL."""
        env = os.environ if environ is None else environ
        return cls(
            remote_timeout_ms=_env_number(
                env, "BALANCE_SIM_REMOTE_TIMEOUT_MS", cls.remote_timeout_ms, int
            ),
            remote_grace_seconds=_env_number(
                env, "BALANCE_SIM_REMOTE_GRACE_SECONDS", cls.remote_grace_seconds, float
            ),
            rpc_timeout_seconds=_env_number(
                env, "BALANCE_SIM_RPC_TIMEOUT_SECONDS", cls.rpc_timeout_seconds, float
            ),
            gas_limit=_env_number(env, "BALANCE_SIM_GAS_LIMIT", cls.gas_limit, int),
            max_cached_accounts=_env_number(
                env, "BALANCE_SIM_MAX_CACHED_ACCOUNTS", cls.max_cached_accounts, int
            ),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
        )
