import hmac
import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.http import JsonResponse

logger = logging.getLogger(__name__)

PROTECTED_PREFIXES = ("/api/", "/tasks/")


class ApiTokenAuthMiddleware:
    """Gates the JSON API behind a static bearer token when one is configured.

    Authorization decisions beyond this yes/no check belong to the deployment in front of
    the service; the resolved user is attached as ``request.storybooker_user``.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request.storybooker_user = None
        expected = str(getattr(settings, "STORYBOOKER_API_TOKEN", "") or "").strip()
        if not expected or not request.path.startswith(PROTECTED_PREFIXES):
            return self.get_response(request)
        token = _extract_bearer_token(request)
        if not token:
            return JsonResponse({"error": "Unauthorized", "message": "Bearer token required."}, status=401)
        if not hmac.compare_digest(token, expected):
            logger.warning("Rejected bearer token for %s %s", request.method, request.path)
            return JsonResponse({"error": "Forbidden", "message": "Invalid bearer token."}, status=403)
        request.storybooker_user = _service_user()
        return self.get_response(request)


def _extract_bearer_token(request) -> str:
    header = request.headers.get("Authorization", "")
    if not header:
        return ""
    parts = header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def _service_user() -> Dict[str, Any]:
    return {"id": "api-token", "displayName": "API token"}


def forwarded_auth_headers(request) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for name in ("Authorization", "Cookie"):
        value: Optional[str] = request.headers.get(name)
        if value:
            headers[name] = value
    return headers
