import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .config import CatalogConfig
from .database.registry import DatabaseProviderRegistry
from .errors import Cancelled
from .storage.registry import StorageProviderRegistry

_providers_lock = threading.Lock()
_providers: Dict[str, Any] = {}


def default_providers(config: CatalogConfig):
    """Return the process-wide (database, storage) providers for ``config.platform``."""
    with _providers_lock:
        if "database" not in _providers:
            _providers["database"] = DatabaseProviderRegistry(config.platform).get_primary_provider()
            _providers["storage"] = StorageProviderRegistry(config.platform).get_primary_provider()
        return _providers["database"], _providers["storage"]


def reset_default_providers() -> None:
    with _providers_lock:
        _providers.clear()


@dataclass
class CatalogContext:
    database: Any
    storage: Any
    config: CatalogConfig = field(default_factory=CatalogConfig)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    user: Optional[Dict[str, Any]] = None
    locale: str = "en"
    headers: Dict[str, str] = field(default_factory=dict)
    base_url: str = ""

    @classmethod
    def from_settings(cls, **kwargs) -> "CatalogContext":
        config = kwargs.pop("config", None) or CatalogConfig.from_settings()
        database, storage = default_providers(config)
        kwargs.setdefault("database", database)
        kwargs.setdefault("storage", storage)
        return cls(config=config, **kwargs)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise Cancelled("Operation cancelled.")

    def child(self) -> "CatalogContext":
        return CatalogContext(
            database=self.database,
            storage=self.storage,
            config=self.config,
            user=self.user,
            locale=self.locale,
            headers=dict(self.headers),
            base_url=self.base_url,
        )
