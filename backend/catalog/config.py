from dataclasses import dataclass, field
from typing import Any, Dict, List

from django.conf import settings

QUEUE_MODES = {"http", "redis", "inprocess"}


@dataclass
class CatalogConfig:
    inline_processing_max_bytes: int = 5 * 1024 * 1024
    queue_large_zip_processing: bool = False
    queue_mode: str = "http"
    jobs_redis_url: str = "redis://redis:6379/0"
    default_purge_after_days: int = 30
    webhook_timeout_ms: int = 5000
    webhooks: List[Dict[str, Any]] = field(default_factory=list)
    secret: str = ""
    platform: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_settings(cls) -> "CatalogConfig":
        mode = str(getattr(settings, "STORYBOOKER_QUEUE_MODE", "http") or "http").strip().lower()
        webhooks = getattr(settings, "STORYBOOKER_WEBHOOKS", []) or []
        return cls(
            inline_processing_max_bytes=int(getattr(settings, "STORYBOOKER_INLINE_PROCESSING_MAX_BYTES", 5 * 1024 * 1024)),
            queue_large_zip_processing=bool(getattr(settings, "STORYBOOKER_QUEUE_LARGE_ZIP_PROCESSING", False)),
            queue_mode=mode if mode in QUEUE_MODES else "http",
            jobs_redis_url=str(getattr(settings, "STORYBOOKER_JOBS_REDIS_URL", "redis://redis:6379/0")),
            default_purge_after_days=int(getattr(settings, "STORYBOOKER_DEFAULT_PURGE_AFTER_DAYS", 30)),
            webhook_timeout_ms=int(getattr(settings, "STORYBOOKER_WEBHOOK_TIMEOUT_MS", 5000)),
            webhooks=[hook for hook in webhooks if isinstance(hook, dict) and hook.get("url")],
            secret=str(getattr(settings, "STORYBOOKER_SECRET", "") or ""),
            platform=dict(getattr(settings, "STORYBOOKER_PLATFORM_CONFIG", {}) or {}),
        )
