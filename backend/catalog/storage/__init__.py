from .types import DownloadedFile, StoredFile

__all__ = ["DownloadedFile", "StoredFile"]
