from typing import Any, Dict

from .providers.local import LocalDocumentProvider
from .providers.orm import OrmDocumentProvider


class DatabaseProviderRegistry:
    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}
        database = self.config.get("database") if isinstance(self.config.get("database"), dict) else {}
        self._database = database
        self._providers_by_name = {}
        for provider in database.get("providers") or []:
            if not isinstance(provider, dict):
                continue
            name = str(provider.get("name") or "").strip()
            if not name:
                continue
            ptype = str(provider.get("type") or "").strip().lower()
            if ptype == "orm":
                self._providers_by_name[name] = OrmDocumentProvider(provider.get("orm") or {})
            elif ptype == "local":
                self._providers_by_name[name] = LocalDocumentProvider(provider.get("local") or {})

    def get_provider(self, name: str):
        provider = self._providers_by_name.get(name)
        if provider:
            return provider
        return LocalDocumentProvider({})

    def get_primary_provider(self):
        primary = self._database.get("primary") if isinstance(self._database.get("primary"), dict) else {}
        pname = str(primary.get("name") or "").strip()
        if pname:
            return self.get_provider(pname)
        if self._providers_by_name:
            first = next(iter(self._providers_by_name.keys()))
            return self._providers_by_name[first]
        return LocalDocumentProvider({})
