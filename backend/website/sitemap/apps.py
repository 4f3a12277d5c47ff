from django.apps import AppConfig


class SitemapConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "sitemap"
