"""Runtime settings read from environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from processor.date_normalizer import get_timezone
from processor.models import ConfigurationError, LedgerSchema

LEDGER_BACKENDS = ('dynamodb', 'csv')


@dataclass(frozen=True)
class Settings:
    """Immutable configuration of one sync run."""
    log_level: str = 'INFO'
    ledger_backend: str = 'dynamodb'
    table_name: str = 'booking-ledger'
    ledger_path: Optional[str] = None
    feed_config_path: Optional[str] = None
    timeout_seconds: int = 30
    max_retries: int = 3
    max_workers: int = 4
    enabled_marker: str = 'enabled'
    timezone: str = 'UTC'
    stale_after_minutes: int = 60

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: On non-integer numbers, an unknown backend or
                an unknown timezone
        """
        env = os.environ if environ is None else environ

        settings = cls(
            log_level=env.get('LOG_LEVEL', 'INFO'),
            ledger_backend=env.get('LEDGER_BACKEND', 'dynamodb').strip().lower(),
            table_name=env.get('TABLE_NAME', 'booking-ledger'),
            ledger_path=env.get('LEDGER_PATH') or None,
            feed_config_path=env.get('FEED_CONFIG_PATH') or None,
            timeout_seconds=_int_setting(env, 'TIMEOUT_SECONDS', 30),
            max_retries=_int_setting(env, 'MAX_RETRIES', 3),
            max_workers=_int_setting(env, 'MAX_WORKERS', 4),
            enabled_marker=env.get('ENABLED_MARKER', 'enabled'),
            timezone=env.get('TIMEZONE', 'UTC'),
            stale_after_minutes=_int_setting(env, 'STALE_AFTER_MINUTES', 60)
        )

        if settings.ledger_backend not in LEDGER_BACKENDS:
            raise ConfigurationError(
                f"LEDGER_BACKEND must be one of {', '.join(LEDGER_BACKENDS)}, "
                f"got {settings.ledger_backend!r}"
            )
        if settings.ledger_backend == 'csv' and not settings.ledger_path:
            raise ConfigurationError("LEDGER_PATH is required when LEDGER_BACKEND is csv")
        try:
            get_timezone(settings.timezone)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        return settings

    def schema(self) -> LedgerSchema:
        """Ledger schema carrying this run's marker, timezone and staleness."""
        return LedgerSchema(
            enabled_marker=self.enabled_marker,
            timezone=self.timezone,
            stale_after_seconds=self.stale_after_minutes * 60
        )


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
