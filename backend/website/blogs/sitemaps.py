from django.db import DatabaseError

from sitemap.builder import PostRecord
from sitemap.exceptions import DataSourceError
from .models import Post


class PostSitemapSource:
    """
    Lists every blog post for the sitemap in a single query.

    Drafts are returned flagged rather than filtered so the builder owns the
    visibility rule.
    """

    def get_queryset(self):
        return Post.objects.only('slug', 'status', 'published_at').order_by('-published_at', 'slug')

    def to_record(self, post: Post) -> PostRecord:
        return PostRecord(identifier=post.slug, published_at=post.published_at, is_draft=post.is_draft)

    async def list_posts(self):
        try:
            return [self.to_record(post) async for post in self.get_queryset()]
        except DatabaseError as exc:
            raise DataSourceError(f"Blog posts are unavailable: {exc}") from exc
