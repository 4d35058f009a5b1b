from typing import Any, Dict

from .providers.local import LocalStorageProvider
from .providers.s3 import S3StorageProvider


class StorageProviderRegistry:
    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}
        storage = self.config.get("storage") if isinstance(self.config.get("storage"), dict) else {}
        self._storage = storage
        self._providers_by_name = {}
        for provider in storage.get("providers") or []:
            if not isinstance(provider, dict):
                continue
            name = str(provider.get("name") or "").strip()
            if not name:
                continue
            ptype = str(provider.get("type") or "").strip().lower()
            if ptype == "s3":
                self._providers_by_name[name] = S3StorageProvider(provider.get("s3") or {})
            elif ptype == "local":
                self._providers_by_name[name] = LocalStorageProvider(provider.get("local") or {})

    def get_provider(self, name: str):
        provider = self._providers_by_name.get(name)
        if provider:
            return provider
        return LocalStorageProvider({})

    def get_primary_provider(self):
        primary = self._storage.get("primary") if isinstance(self._storage.get("primary"), dict) else {}
        pname = str(primary.get("name") or "").strip()
        if pname:
            return self.get_provider(pname)
        if self._providers_by_name:
            first = next(iter(self._providers_by_name.keys()))
            return self._providers_by_name[first]
        return LocalStorageProvider({})
