from django import template

from sitemap.builder import format_lastmod

register = template.Library()


@register.filter
def w3c_instant(value):
    """ISO-8601 UTC with milliseconds, as sitemap <lastmod> expects."""
    if not value:
        return ""
    return format_lastmod(value)
