from django.apps import AppConfig


class CatalogAppConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "catalog"
    label = "catalog"
