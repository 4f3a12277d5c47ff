"""
Sitemap generation for the blog.

The document lists the fixed static pages first, in configured order, then
every non-draft post in the order the content source returned them. Output
depends only on the inputs, so two builds over the same content are
byte-identical.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import List, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlsplit

from django.contrib.sitemaps import Sitemap
from django.template.loader import render_to_string

from .exceptions import ConfigurationError, DataSourceError, SitemapError

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/xml"
TEMPLATE_NAME = "sitemap/urlset.xml"

POST_CHANGEFREQ = "monthly"
POST_PRIORITY = 0.7


class ChangeFrequency(str, enum.Enum):
    ALWAYS = "always"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    NEVER = "never"


class PostPathConvention(str, enum.Enum):
    """Where posts live under the base URL. Fixed once per deployment."""
    BLOG = "blog"
    BLOG_POSTS = "blog/posts"


@dataclass(frozen=True)
class StaticPageEntry:
    path: str
    changefreq: ChangeFrequency
    priority: float

    def __post_init__(self):
        try:
            changefreq = ChangeFrequency(self.changefreq)
        except ValueError:
            raise ConfigurationError(
                f"Unknown change frequency {self.changefreq!r} for page {self.path!r}"
            ) from None
        try:
            priority = float(self.priority)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Priority for page {self.path!r} must be a number, got {self.priority!r}"
            ) from None
        if not 0.0 <= priority <= 1.0:
            raise ConfigurationError(
                f"Priority for page {self.path!r} must be within [0.0, 1.0], got {priority}"
            )
        object.__setattr__(self, "path", (self.path or "").strip("/"))
        object.__setattr__(self, "changefreq", changefreq)
        object.__setattr__(self, "priority", priority)


@dataclass(frozen=True)
class PostRecord:
    identifier: str
    published_at: Optional[date]
    is_draft: bool = False


class PostSource(Protocol):
    async def list_posts(self) -> Sequence[PostRecord]:
        """Return every post in the collection, drafts included."""


class StaticPagesSitemap(Sitemap):
    """Fixed pages such as the home page and the blog index."""

    def __init__(self, pages):
        self.pages = pages

    def items(self):
        return self.pages

    def location(self, page):
        return f"/{page.path}" if page.path else ""

    def changefreq(self, page):
        return page.changefreq.value

    def priority(self, page):
        return format_priority(page.priority)


class PostsSitemap(Sitemap):
    changefreq = POST_CHANGEFREQ

    def __init__(self, posts, post_path):
        self.posts = posts
        self.post_path = post_path

    def items(self):
        return self.posts

    def location(self, post):
        return f"/{self.post_path.value}/{post.identifier}"

    def lastmod(self, post):
        return as_utc(post.published_at)

    def priority(self, post):
        return format_priority(POST_PRIORITY)


def normalize_base_url(base_url) -> str:
    """Validate the site root and drop a trailing slash."""
    if not isinstance(base_url, str) or not base_url.strip():
        raise ConfigurationError("Sitemap base URL is empty")
    base_url = base_url.strip()
    parts = urlsplit(base_url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(f"Sitemap base URL must be an absolute http(s) URL, got {base_url!r}")
    if parts.query or parts.fragment:
        raise ConfigurationError(f"Sitemap base URL must not carry a query or fragment: {base_url!r}")
    return base_url.rstrip("/")


def coerce_post_path(value) -> PostPathConvention:
    try:
        return PostPathConvention(value)
    except ValueError:
        raise ConfigurationError(f"Unknown post path convention {value!r}") from None


def coerce_static_pages(pages) -> Tuple[StaticPageEntry, ...]:
    if pages is None or isinstance(pages, (str, bytes, dict)):
        raise ConfigurationError(f"Static pages must be a list of StaticPageEntry, got {pages!r}")
    try:
        pages = tuple(pages)
    except TypeError:
        raise ConfigurationError(f"Static pages must be a list of StaticPageEntry, got {pages!r}") from None
    for page in pages:
        if not isinstance(page, StaticPageEntry):
            raise ConfigurationError(f"Static page must be a StaticPageEntry, got {page!r}")
    return pages


def format_priority(value: float) -> str:
    # plain decimal with at least one fractional digit: 1.0, 0.8, 0.75, 0.00001
    text = format(Decimal(repr(float(value))), "f")
    if "." not in text:
        text += ".0"
    return text


def as_utc(value: date) -> datetime:
    """Aware UTC datetime for a date or datetime; naive values are taken as UTC."""
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_lastmod(value: date) -> str:
    """Render an instant as ISO-8601 UTC with milliseconds, e.g. 2024-01-01T00:00:00.000Z."""
    return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def published_posts(posts) -> List[PostRecord]:
    """Drop drafts, then check the survivors carry what the sitemap needs."""
    try:
        posts = list(posts)
        visible = [post for post in posts if not post.is_draft]
    except (AttributeError, TypeError) as exc:
        raise DataSourceError(f"Content source returned unreadable post records: {exc}") from exc
    for post in visible:
        identifier = getattr(post, "identifier", None)
        if not identifier or not isinstance(identifier, str):
            raise DataSourceError(f"Post record has no identifier: {post!r}")
        if not hasattr(post, "published_at"):
            raise DataSourceError(f"Post {identifier!r} has no publication date field")
        if post.published_at is None:
            raise DataSourceError(f"Post {identifier!r} has no publication date")
        if not isinstance(post.published_at, date):
            raise DataSourceError(
                f"Post {identifier!r} has an invalid publication date: {post.published_at!r}"
            )
    return visible


def collect_urls(sitemap: Sitemap, base_url: str) -> List[dict]:
    parts = urlsplit(base_url)
    site = SimpleNamespace(domain=parts.netloc + parts.path)
    urls = []
    for page in sitemap.paginator.page_range:
        urls.extend(sitemap.get_urls(page=page, site=site, protocol=parts.scheme))
    return urls


def render_sitemap(base_url, static_pages, posts, post_path=PostPathConvention.BLOG) -> str:
    base_url = normalize_base_url(base_url)
    post_path = coerce_post_path(post_path)
    static_pages = coerce_static_pages(static_pages)
    try:
        posts = list(posts)
    except TypeError as exc:
        raise DataSourceError(f"Content source returned no post collection: {posts!r}") from exc
    visible = published_posts(posts)
    logger.info("Sitemap: %d post(s) discovered, %d draft(s) skipped", len(posts), len(posts) - len(visible))

    urlset = collect_urls(StaticPagesSitemap(static_pages), base_url)
    urlset += collect_urls(PostsSitemap(visible, post_path), base_url)
    xml_content = render_to_string(TEMPLATE_NAME, {"urlset": urlset})
    logger.info("Sitemap: %d URL(s) emitted", len(urlset))
    return xml_content


async def build_sitemap(source: PostSource, base_url, static_pages, post_path=PostPathConvention.BLOG) -> str:
    """
    Fetch all posts from ``source`` in one call and render the sitemap.

    Configuration is checked before the source is touched. Either a complete
    document is returned or a SitemapError is raised.
    """
    normalize_base_url(base_url)
    coerce_post_path(post_path)
    static_pages = coerce_static_pages(static_pages)

    try:
        posts = await source.list_posts()
    except SitemapError:
        raise
    except Exception as exc:
        raise DataSourceError(f"Could not list posts: {exc}") from exc

    return render_sitemap(base_url, static_pages, posts, post_path)
