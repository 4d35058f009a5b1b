from dataclasses import dataclass
from typing import IO, Union

FileContent = Union[bytes, str, IO[bytes]]


@dataclass
class StoredFile:
    path: str
    content: FileContent
    mime_type: str = "application/octet-stream"


@dataclass
class DownloadedFile:
    content: FileContent
    mime_type: str = "application/octet-stream"
    path: str = ""
