from django.urls import path

from . import views

urlpatterns = [
    path("api/projects", views.projects_collection, name="projects"),
    path("api/projects/<str:project_id>", views.project_detail, name="project-detail"),
    path("api/projects/<str:project_id>/builds", views.builds_collection, name="builds"),
    path("api/projects/<str:project_id>/builds/<str:build_id>", views.build_detail, name="build-detail"),
    path("api/projects/<str:project_id>/builds/<str:build_id>/upload", views.build_upload, name="build-upload"),
    path("api/projects/<str:project_id>/builds/<str:build_id>/stories", views.build_stories, name="build-stories"),
    path("api/projects/<str:project_id>/tags", views.tags_collection, name="tags"),
    path("api/projects/<str:project_id>/tags/<str:tag_id>", views.tag_detail, name="tag-detail"),
    path("api/projects/<str:project_id>/webhooks", views.webhooks_collection, name="webhooks"),
    path("api/projects/<str:project_id>/webhooks/<str:webhook_id>", views.webhook_detail, name="webhook-detail"),
    path("tasks/process-zip", views.task_process_zip, name="task-process-zip"),
    path("tasks/purge", views.task_purge, name="task-purge"),
]
