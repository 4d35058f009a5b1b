import hashlib
import hmac
import json
import logging
import uuid
from concurrent.futures import Future
from typing import Any, Dict, List, Optional

import requests
from jsonschema import Draft202012Validator

from .context import CatalogContext
from .errors import ValidationFailed
from .utils import best_effort, collection_id, now_iso, run_concurrently, submit_background

logger = logging.getLogger(__name__)

WEBHOOK_EVENTS = (
    "build:created",
    "build:deleted",
    "build:updated",
    "project:created",
    "project:deleted",
    "project:updated",
    "tag:created",
    "tag:deleted",
    "tag:updated",
)

WEBHOOK_SCHEMA = {
    "type": "object",
    "required": ["url"],
    "properties": {
        "url": {"type": "string", "pattern": "^https?://"},
        "headers": {"type": "object", "additionalProperties": {"type": "string"}},
        "events": {"type": "array", "items": {"enum": list(WEBHOOK_EVENTS)}},
        "secret": {"type": "string"},
    },
}


def _validate(payload: Dict[str, Any]) -> List[str]:
    validator = Draft202012Validator(WEBHOOK_SCHEMA)
    errors = []
    for error in sorted(validator.iter_errors(payload), key=lambda e: list(e.path)):
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        errors.append(f"{path}: {error.message}")
    return errors


def sign_body(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _accepts(hook: Dict[str, Any], event: str) -> bool:
    events = hook.get("events")
    return not events or event in events


class WebhookLedger:
    """Webhook registrations owned by one project."""

    def __init__(self, context: CatalogContext, project_id: str):
        self.context = context
        self.project_id = project_id
        self.collection_id = collection_id(project_id, "Webhooks")

    def list(self) -> List[Dict[str, Any]]:
        self.context.raise_if_cancelled()
        if not self.context.database.has_collection(self.collection_id):
            return []
        return self.context.database.list_documents(self.collection_id)

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = dict(data or {})
        if isinstance(payload.get("events"), str):
            payload["events"] = [payload["events"]]
        errors = _validate(payload)
        if errors:
            raise ValidationFailed(errors)
        now = now_iso()
        webhook = {
            "id": str(uuid.uuid4()),
            "url": payload["url"],
            "headers": dict(payload.get("headers") or {}),
            "events": list(payload.get("events") or []),
            "secret": str(payload.get("secret") or ""),
            "createdAt": now,
            "updatedAt": now,
        }
        logger.info("Create webhook '%s' for project '%s'...", webhook["url"], self.project_id)
        self.context.raise_if_cancelled()
        if not self.context.database.has_collection(self.collection_id):
            self.context.database.create_collection(self.collection_id)
        self.context.database.create_document(self.collection_id, webhook)
        return webhook

    def get(self, webhook_id: str) -> Dict[str, Any]:
        self.context.raise_if_cancelled()
        return self.context.database.get_document(self.collection_id, webhook_id)

    def delete(self, webhook_id: str) -> None:
        logger.info("Delete webhook '%s'...", webhook_id)
        self.context.raise_if_cancelled()
        self.context.database.delete_document(self.collection_id, webhook_id)


def select_hooks(
    context: CatalogContext,
    event: str,
    project_id: str,
    skip_project_hooks: bool = False,
) -> List[Dict[str, Any]]:
    hooks = [dict(hook, scope="config") for hook in context.config.webhooks if _accepts(hook, event)]
    if skip_project_hooks or not project_id:
        return hooks
    result = best_effort(f"[webhook] list hooks for '{project_id}'", WebhookLedger(context, project_id).list)
    for hook in result.value or []:
        if _accepts(hook, event):
            hooks.append(dict(hook, scope="project", secret=hook.get("secret") or context.config.secret))
    return hooks


def deliver(event: str, hook: Dict[str, Any], project_id: str, payload: Any, timeout_ms: int) -> Dict[str, Any]:
    url = str(hook.get("url") or "")
    body = json.dumps({"event": event, "projectId": project_id, "payload": payload}, default=str).encode("utf-8")
    headers = {str(k): str(v) for k, v in (hook.get("headers") or {}).items()}
    headers.update({"content-type": "application/json", "x-webhook-event": event})
    if hook.get("scope") == "project":
        headers["x-webhook-id"] = str(hook.get("id") or "")
        headers["x-webhook-project-id"] = project_id
        if hook.get("secret"):
            headers["x-webhook-signature"] = sign_body(str(hook["secret"]), body)
    try:
        response = requests.post(url, data=body, headers=headers, timeout=timeout_ms / 1000.0)
    except Exception as exc:
        logger.error("[webhook] ERROR (%s) %s - %s", event, url, exc)
        return {"url": url, "ok": False, "status": 0, "error": str(exc)}
    ok = 200 <= response.status_code < 300
    if ok:
        logger.info("[webhook] (%s) %s - %s", event, url, response.status_code)
    else:
        logger.error("[webhook] ERROR (%s) %s - %s", event, url, response.status_code)
    return {"url": url, "ok": ok, "status": response.status_code}


def _deliver_all(event: str, hooks: List[Dict[str, Any]], project_id: str, payload: Any, timeout_ms: int) -> List[Dict[str, Any]]:
    results = run_concurrently(
        f"[webhook] ({event})",
        [lambda hook=hook: deliver(event, hook, project_id, payload, timeout_ms) for hook in hooks],
    )
    return [result.value if result.ok else {"url": "", "ok": False, "error": str(result.error)} for result in results]


def dispatch(
    context: CatalogContext,
    event: str,
    project_id: str,
    payload: Any,
    skip_project_hooks: bool = False,
    timeout_ms: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Deliver ``event`` to every matching hook and wait for all deliveries. Never raises."""
    timeout = int(timeout_ms or context.config.webhook_timeout_ms or 5000)
    hooks = select_hooks(context, event, project_id, skip_project_hooks=skip_project_hooks)
    if not hooks:
        return []
    return _deliver_all(event, hooks, project_id, payload, timeout)


def publish_event(
    context: CatalogContext,
    event: str,
    project_id: str,
    payload: Any,
    skip_project_hooks: bool = False,
) -> Optional[Future]:
    """Fire-and-forget variant of :func:`dispatch` used by the ledgers."""
    result = best_effort(
        f"[webhook] select hooks ({event})",
        select_hooks,
        context,
        event,
        project_id,
        skip_project_hooks,
    )
    hooks = result.value or []
    if not hooks:
        return None
    timeout = int(context.config.webhook_timeout_ms or 5000)
    return submit_background(f"[webhook] ({event})", _deliver_all, event, hooks, project_id, payload, timeout)
