"""Delivery tunables read from the ``[custom]`` table of ``domain.toml``.

Every key can be overridden by an environment variable of the same name.
"""

import os
from dataclasses import dataclass

from protean.utils.globals import current_domain


@dataclass(frozen=True)
class DeliverySettings:
    max_concurrency: int = 10
    send_timeout: float = 10.0
    bulk_chunk_size: int = 100
    default_timezone: str = "UTC"
    retention_days: int = 30
    stale_token_days: int = 90

    @classmethod
    def from_domain(cls, domain=None) -> "DeliverySettings":
        domain = domain or current_domain
        custom = domain.config.get("custom", {}) or {}

        def read(key, cast, default):
            value = os.environ.get(key, custom.get(key))
            return default if value in (None, "") else cast(value)

        return cls(
            max_concurrency=read("PUSH_MAX_CONCURRENCY", int, cls.max_concurrency),
            send_timeout=read("PUSH_SEND_TIMEOUT_SECONDS", float, cls.send_timeout),
            bulk_chunk_size=read("BULK_CHUNK_SIZE", int, cls.bulk_chunk_size),
            default_timezone=read("DEFAULT_TIMEZONE", str, cls.default_timezone),
            retention_days=read("NOTIFICATION_RETENTION_DAYS", int, cls.retention_days),
            stale_token_days=read("STALE_TOKEN_DAYS", int, cls.stale_token_days),
        )
