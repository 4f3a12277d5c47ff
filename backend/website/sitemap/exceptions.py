from django.core.exceptions import ImproperlyConfigured


class SitemapError(Exception):
    """Base class for failures that abort a sitemap build."""


class ConfigurationError(SitemapError, ImproperlyConfigured):
    """Invalid or missing base URL, static page list or post path."""


class DataSourceError(SitemapError):
    """The content source is unreachable or returned an incomplete record."""
