import logging
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from django.conf import settings

logger = logging.getLogger(__name__)

SERVICE_NAME = "StoryBooker"
PROJECT_ID_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,60}$")
TICKET_RE = re.compile(r"^\w+-\d+$")
PR_RE = re.compile(r"^\d+$")
NON_WORD_RE = re.compile(r"\W+")

MIME_ZIP = "application/zip"
MIME_MULTIPART = "multipart/form-data"
MIME_OCTET = "application/octet-stream"

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


@dataclass
class BestEffortResult:
    ok: bool
    value: Any = None
    error: Optional[BaseException] = None


def best_effort(description: str, func: Callable[..., Any], *args, **kwargs) -> BestEffortResult:
    try:
        return BestEffortResult(ok=True, value=func(*args, **kwargs))
    except Exception as exc:
        logger.exception("%s failed: %s", description, exc)
        return BestEffortResult(ok=False, error=exc)


def _background_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            workers = int(getattr(settings, "STORYBOOKER_MAX_WORKERS", 4) or 4)
            _executor = ThreadPoolExecutor(max_workers=max(workers, 1), thread_name_prefix="storybooker")
        return _executor


def submit_background(description: str, func: Callable[..., Any], *args, **kwargs) -> Future:
    """Schedule ``func`` without waiting for it; failures are only logged."""

    def _log_failure(future: Future) -> None:
        if future.cancelled():
            logger.warning("%s was cancelled before it ran", description)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("%s failed: %s", description, exc, exc_info=exc)

    future = _background_executor().submit(func, *args, **kwargs)
    future.add_done_callback(_log_failure)
    return future


def run_concurrently(description: str, calls: Iterable[Callable[[], Any]]) -> List[BestEffortResult]:
    """Run every call on a thread pool and wait for all of them.

    Individual failures are logged and reported in the returned results; they never abort
    the batch. Each batch owns its pool so nested batches cannot starve each other.
    """
    pending = list(calls)
    if not pending:
        return []
    workers = int(getattr(settings, "STORYBOOKER_MAX_WORKERS", 4) or 4)
    with ThreadPoolExecutor(max_workers=max(min(workers, len(pending)), 1)) as pool:
        futures = [pool.submit(best_effort, description, call) for call in pending]
        return [future.result() for future in futures]


class _KeyedLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


_keyed_locks: Dict[str, _KeyedLock] = {}
_keyed_locks_guard = threading.Lock()


@contextmanager
def keyed_lock(key: str) -> Iterator[None]:
    """Serialise work on ``key`` within this process.

    An entry lives only while some thread holds or waits for it.
    """
    with _keyed_locks_guard:
        entry = _keyed_locks.get(key)
        if entry is None:
            entry = _keyed_locks[key] = _KeyedLock()
        entry.users += 1
    try:
        with entry.lock:
            yield
    finally:
        with _keyed_locks_guard:
            entry.users -= 1
            if entry.users == 0:
                del _keyed_locks[key]


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: str) -> Optional[datetime]:
    raw = str(value or "").strip()
    if not raw:
        return None
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def slugify_tag(value: str) -> str:
    return NON_WORD_RE.sub("-", str(value or "").strip().lower())


def guess_tag_type(value: str) -> str:
    if PR_RE.match(value):
        return "pr"
    if TICKET_RE.match(value):
        return "ticket"
    return "branch"


def parse_tag_ids(raw: Any) -> List[str]:
    if isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        items = str(raw or "").split(",")
    seen: List[str] = []
    for item in items:
        value = item.strip()
        if value and value not in seen:
            seen.append(value)
    return seen


def serialize_tag_ids(tag_ids: Iterable[str]) -> str:
    return ",".join(parse_tag_ids(list(tag_ids)))


def collection_id(project_id: Optional[str], suffix: str = "") -> str:
    if project_id is None:
        return f"{SERVICE_NAME}-{suffix}"
    if not suffix:
        return f"{SERVICE_NAME}-{project_id}"
    return f"{SERVICE_NAME}-{project_id}-{suffix}"


def container_id(project_id: str) -> str:
    return f"{SERVICE_NAME.lower()}-{project_id}"
