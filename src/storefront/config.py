"""Engine settings, read from the environment with safe defaults."""

import os
from dataclasses import dataclass
from datetime import timedelta


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


@dataclass(frozen=True)
class EngineSettings:
    # Carrier pricing is volatile: quotes live minutes, not hours.
    rate_ttl_seconds: float = 300.0
    carrier_timeout_seconds: float = 3.0
    sweep_interval_seconds: float = 60.0
    transition_attempts: int = 3
    return_window_days: int = 30
    default_currency: str = "MXN"

    @property
    def rate_ttl(self) -> timedelta:
        return timedelta(seconds=self.rate_ttl_seconds)

    @property
    def return_window(self) -> timedelta:
        return timedelta(days=self.return_window_days)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        defaults = cls()
        return cls(
            rate_ttl_seconds=_env_float("STOREFRONT_RATE_TTL_SECONDS", defaults.rate_ttl_seconds),
            carrier_timeout_seconds=_env_float("STOREFRONT_CARRIER_TIMEOUT_SECONDS", defaults.carrier_timeout_seconds),
            sweep_interval_seconds=_env_float("STOREFRONT_SWEEP_INTERVAL_SECONDS", defaults.sweep_interval_seconds),
            transition_attempts=_env_int("STOREFRONT_TRANSITION_ATTEMPTS", defaults.transition_attempts),
            return_window_days=_env_int("STOREFRONT_RETURN_WINDOW_DAYS", defaults.return_window_days),
            default_currency=os.getenv("STOREFRONT_DEFAULT_CURRENCY", defaults.default_currency).upper(),
        )
