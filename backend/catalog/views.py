import json
import logging
from functools import wraps
from typing import Any, Callable, Dict

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from storybooker.middleware import forwarded_auth_headers

from .builds import BuildLedger
from .context import CatalogContext
from .errors import CatalogError, UnsupportedMediaType, ValidationFailed, as_internal
from .processing import process_build_archive
from .projects import ProjectLedger
from .purge import purge
from .tags import TagLedger
from .uploads import ArchiveUpload
from .utils import MIME_MULTIPART, MIME_ZIP
from .webhooks import WebhookLedger

logger = logging.getLogger(__name__)


def _parse_json(request: HttpRequest) -> Dict[str, Any]:
    if request.body:
        try:
            payload = json.loads(request.body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            return {}
        return payload if isinstance(payload, dict) else {}
    return {}


def _context(request: HttpRequest) -> CatalogContext:
    language = (request.headers.get("Accept-Language") or "en").split(",")[0].strip() or "en"
    return CatalogContext.from_settings(
        user=getattr(request, "storybooker_user", None),
        locale=language,
        headers=forwarded_auth_headers(request),
        base_url=request.build_absolute_uri("/"),
    )


def _error_response(error: CatalogError) -> JsonResponse:
    body: Dict[str, Any] = {"error": error.error_type, "message": error.message}
    if isinstance(error, ValidationFailed):
        body["details"] = error.errors
    return JsonResponse(body, status=error.status)


def _method_not_allowed() -> JsonResponse:
    return JsonResponse({"error": "MethodNotAllowed", "message": "method not allowed"}, status=405)


def catalog_view(func: Callable[..., HttpResponse]) -> Callable[..., HttpResponse]:
    """Translate catalog errors into JSON responses; unknown failures become a generic 500."""

    @wraps(func)
    def _wrapped(request: HttpRequest, *args, **kwargs) -> HttpResponse:
        try:
            return func(request, *args, **kwargs)
        except CatalogError as exc:
            if exc.status >= 500:
                logger.exception("%s %s failed: %s", request.method, request.path, exc)
            return _error_response(exc)
        except Exception as exc:
            logger.exception("%s %s failed: %s", request.method, request.path, exc)
            return _error_response(as_internal(exc, "Internal server error."))

    return csrf_exempt(_wrapped)


# Projects


@catalog_view
def projects_collection(request: HttpRequest) -> JsonResponse:
    projects = ProjectLedger(_context(request))
    if request.method == "POST":
        project = projects.create(_parse_json(request))
        return JsonResponse(project.to_document(), status=201)
    if request.method != "GET":
        return _method_not_allowed()
    return JsonResponse({"projects": [project.to_document() for project in projects.list()]})


@catalog_view
def project_detail(request: HttpRequest, project_id: str) -> HttpResponse:
    projects = ProjectLedger(_context(request))
    if request.method == "GET":
        return JsonResponse(projects.get(project_id).to_document())
    if request.method in ("PATCH", "PUT"):
        projects.get(project_id)
        projects.update(project_id, _parse_json(request))
        return JsonResponse(projects.get(project_id).to_document())
    if request.method == "DELETE":
        projects.delete(project_id)
        return HttpResponse(status=204)
    return _method_not_allowed()


# Builds


@catalog_view
def builds_collection(request: HttpRequest, project_id: str) -> JsonResponse:
    context = _context(request)
    ProjectLedger(context).get(project_id)
    builds = BuildLedger(context, project_id)
    if request.method == "POST":
        build = builds.create(_parse_json(request))
        return JsonResponse(build.to_payload(), status=201)
    if request.method != "GET":
        return _method_not_allowed()
    tag_id = request.GET.get("tag")
    items = builds.list_by_tag(tag_id) if tag_id else builds.list()
    return JsonResponse({"builds": [build.to_payload() for build in items]})


@catalog_view
def build_detail(request: HttpRequest, project_id: str, build_id: str) -> HttpResponse:
    builds = BuildLedger(_context(request), project_id)
    if request.method == "GET":
        return JsonResponse(builds.get(build_id).to_payload())
    if request.method == "DELETE":
        builds.delete(build_id)
        return HttpResponse(status=204)
    return _method_not_allowed()


def _archive_from_request(request: HttpRequest):
    content_type = (request.META.get("CONTENT_TYPE") or "").split(";")[0].strip().lower()
    if content_type == MIME_MULTIPART:
        upload = request.FILES.get("file")
        if upload is None:
            raise ValidationFailed(["file: a zip file is required"])
        variant = request.POST.get("variant") or request.GET.get("variant") or "primary"
        return variant, ArchiveUpload(content=upload, size=upload.size, filename=upload.name)
    if content_type == MIME_ZIP:
        raw_length = str(request.META.get("CONTENT_LENGTH") or "").strip()
        try:
            length = int(raw_length)
        except ValueError:
            length = 0
        if length <= 0:
            raise ValidationFailed(["Content-Length: a positive content length is required"])
        variant = request.GET.get("variant") or "primary"
        return variant, ArchiveUpload(content=request, size=length)
    raise UnsupportedMediaType(
        f"Content-Type '{content_type or 'unknown'}' is not supported. Use '{MIME_MULTIPART}' or '{MIME_ZIP}'."
    )


@catalog_view
def build_upload(request: HttpRequest, project_id: str, build_id: str) -> HttpResponse:
    if request.method != "POST":
        return _method_not_allowed()
    variant, archive = _archive_from_request(request)
    BuildLedger(_context(request), project_id).upload(build_id, variant, archive)
    return HttpResponse(status=204)


@catalog_view
def build_stories(request: HttpRequest, project_id: str, build_id: str) -> JsonResponse:
    if request.method != "GET":
        return _method_not_allowed()
    builds = BuildLedger(_context(request), project_id)
    build = builds.get(build_id)
    return JsonResponse({"stories": builds.get_stories(build)})


# Tags


@catalog_view
def tags_collection(request: HttpRequest, project_id: str) -> JsonResponse:
    context = _context(request)
    ProjectLedger(context).get(project_id)
    tags = TagLedger(context, project_id)
    if request.method == "POST":
        tag = tags.create(_parse_json(request))
        return JsonResponse(tag.to_document(), status=201)
    if request.method != "GET":
        return _method_not_allowed()
    tag_type = request.GET.get("type")
    items = tags.list(filter=(lambda item: item.get("type") == tag_type) if tag_type else None)
    return JsonResponse({"tags": [tag.to_document() for tag in items]})


@catalog_view
def tag_detail(request: HttpRequest, project_id: str, tag_id: str) -> HttpResponse:
    tags = TagLedger(_context(request), project_id)
    if request.method == "GET":
        return JsonResponse(tags.get(tag_id).to_document())
    if request.method in ("PATCH", "PUT"):
        tags.get(tag_id)
        tags.update(tag_id, _parse_json(request))
        return JsonResponse(tags.get(tag_id).to_document())
    if request.method == "DELETE":
        tags.delete(tag_id)
        return HttpResponse(status=204)
    return _method_not_allowed()


# Webhooks


@catalog_view
def webhooks_collection(request: HttpRequest, project_id: str) -> JsonResponse:
    context = _context(request)
    ProjectLedger(context).get(project_id)
    webhooks = WebhookLedger(context, project_id)
    if request.method == "POST":
        return JsonResponse(webhooks.create(_parse_json(request)), status=201)
    if request.method != "GET":
        return _method_not_allowed()
    return JsonResponse({"webhooks": webhooks.list()})


@catalog_view
def webhook_detail(request: HttpRequest, project_id: str, webhook_id: str) -> HttpResponse:
    webhooks = WebhookLedger(_context(request), project_id)
    if request.method == "GET":
        return JsonResponse(webhooks.get(webhook_id))
    if request.method == "DELETE":
        webhooks.delete(webhook_id)
        return HttpResponse(status=204)
    return _method_not_allowed()


# Tasks


def _task_param(request: HttpRequest, payload: Dict[str, Any], name: str) -> str:
    return str(request.GET.get(name) or payload.get(name) or "").strip()


@catalog_view
def task_process_zip(request: HttpRequest) -> HttpResponse:
    if request.method != "POST":
        return _method_not_allowed()
    payload = _parse_json(request)
    project_id = _task_param(request, payload, "projectId")
    build_id = _task_param(request, payload, "buildId")
    variant = _task_param(request, payload, "variant") or "primary"
    missing = [name for name, value in (("projectId", project_id), ("buildId", build_id)) if not value]
    if missing:
        raise ValidationFailed([f"{name}: is required" for name in missing])
    process_build_archive(_context(request), project_id, build_id, variant)
    return HttpResponse(status=204)


@catalog_view
def task_purge(request: HttpRequest) -> HttpResponse:
    if request.method != "POST":
        return _method_not_allowed()
    payload = _parse_json(request)
    purge(_context(request), _task_param(request, payload, "projectId") or None)
    return HttpResponse(status=204)
