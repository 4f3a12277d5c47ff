from datetime import datetime, timezone
from unittest import mock

from asgiref.sync import async_to_sync
from django.contrib import admin
from django.db import DatabaseError
from django.test import TestCase

from blogs.admin import PostAdmin
from blogs.models import Post
from blogs.sitemaps import PostSitemapSource
from sitemap.builder import PostRecord
from sitemap.exceptions import DataSourceError


class PostSitemapSourceTests(TestCase):
    def setUp(self):
        self.first = Post.objects.create(
            title="Hello Dubai",
            slug="hello-dubai",
            summary="Summary",
            content="<p>Content</p>",
            status="published",
            published_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        self.second = Post.objects.create(
            title="Second",
            slug="second",
            status="published",
            published_at=datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc),
        )
        self.draft = Post.objects.create(title="Draft", slug="draft", status="draft")

    def list_posts(self):
        return async_to_sync(PostSitemapSource().list_posts)()

    def test_lists_every_post_newest_first(self):
        records = self.list_posts()
        self.assertEqual([r.identifier for r in records], ["second", "hello-dubai", "draft"])
        self.assertEqual(
            records[0],
            PostRecord("second", datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc), is_draft=False),
        )

    def test_unpublished_posts_are_flagged(self):
        Post.objects.create(title="Old", slug="old", status="archived",
                            published_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
        flags = {r.identifier: r.is_draft for r in self.list_posts()}
        self.assertTrue(flags["draft"])
        self.assertTrue(flags["old"])
        self.assertFalse(flags["hello-dubai"])

    def test_database_failure(self):
        with mock.patch.object(PostSitemapSource, "get_queryset", side_effect=DatabaseError("no such table")):
            with self.assertRaises(DataSourceError):
                self.list_posts()

    def test_slug_defaults_from_title(self):
        post = Post.objects.create(title="A New Post")
        self.assertEqual(post.slug, "a-new-post")
        self.assertTrue(post.is_draft)


class PostAdminActionTests(TestCase):
    def setUp(self):
        self.post = Post.objects.create(
            title="Hello", slug="hello", status="published",
            published_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        self.admin = PostAdmin(Post, admin.site)

    def flags(self):
        return {r.identifier: r.is_draft for r in async_to_sync(PostSitemapSource().list_posts)()}

    def test_make_draft_hides_post(self):
        self.admin.make_draft(None, Post.objects.filter(pk=self.post.pk))
        self.assertTrue(self.flags()["hello"])

    def test_make_published_shows_post(self):
        Post.objects.filter(pk=self.post.pk).update(status="draft")
        self.admin.make_published(None, Post.objects.filter(pk=self.post.pk))
        self.assertFalse(self.flags()["hello"])

    def test_make_archived_hides_post(self):
        self.admin.make_archived(None, Post.objects.filter(pk=self.post.pk))
        self.assertTrue(self.flags()["hello"])
