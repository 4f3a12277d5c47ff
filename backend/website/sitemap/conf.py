from dataclasses import dataclass
from typing import Tuple

from django.conf import settings

from .builder import PostPathConvention, StaticPageEntry, coerce_post_path, normalize_base_url
from .exceptions import ConfigurationError

DEFAULT_STATIC_PAGES = [
    {"path": "", "changefreq": "daily", "priority": 1.0},
    {"path": "blog", "changefreq": "daily", "priority": 0.8},
]


@dataclass(frozen=True)
class SitemapConfig:
    base_url: str
    static_pages: Tuple[StaticPageEntry, ...]
    post_path: PostPathConvention


def static_pages_from_settings(pages) -> Tuple[StaticPageEntry, ...]:
    if pages is None or isinstance(pages, (str, bytes, dict)):
        raise ConfigurationError("SITEMAP_STATIC_PAGES must be a list of page definitions")
    entries = []
    for page in pages:
        if not isinstance(page, dict):
            raise ConfigurationError(f"Static page definition must be a dict, got {page!r}")
        missing = {"path", "changefreq", "priority"} - set(page)
        if missing:
            raise ConfigurationError(
                f"Static page definition {page!r} is missing {', '.join(sorted(missing))}"
            )
        entries.append(StaticPageEntry(page["path"], page["changefreq"], page["priority"]))
    return tuple(entries)


def get_config() -> SitemapConfig:
    """Read the sitemap settings; called per build so overrides apply immediately."""
    return SitemapConfig(
        base_url=normalize_base_url(getattr(settings, "SITEMAP_BASE_URL", "")),
        static_pages=static_pages_from_settings(getattr(settings, "SITEMAP_STATIC_PAGES", DEFAULT_STATIC_PAGES)),
        post_path=coerce_post_path(getattr(settings, "SITEMAP_POST_PATH", PostPathConvention.BLOG.value)),
    )
