import os
import tempfile
import xml.etree.ElementTree as ET
from datetime import date, datetime, timedelta, timezone
from io import StringIO
from types import SimpleNamespace
from unittest import mock

from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase, override_settings

from blogs.models import Post
from blogs.sitemaps import PostSitemapSource
from sitemap.builder import (
    ChangeFrequency, PostPathConvention, PostRecord, StaticPageEntry,
    build_sitemap, format_lastmod, render_sitemap,
)
from sitemap.conf import get_config
from sitemap.exceptions import ConfigurationError, DataSourceError

NS = {"sm": "http://www.sitemaps.org/schemas/sitemap/0.9"}
BASE = "https://example.com"

PAGES = [
    StaticPageEntry("", ChangeFrequency.DAILY, 1.0),
    StaticPageEntry("blog", ChangeFrequency.DAILY, 0.8),
]


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def locs(xml_content):
    root = ET.fromstring(xml_content.encode("utf-8"))
    return [el.text for el in root.findall("sm:url/sm:loc", NS)]


class FixtureSource:
    def __init__(self, posts=(), error=None):
        self.posts = list(posts)
        self.error = error
        self.calls = 0

    async def list_posts(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.posts)


class EmptyResponseSource:
    async def list_posts(self):
        return None


class RenderSitemapTests(SimpleTestCase):
    def setUp(self):
        self.posts = [
            PostRecord("a", utc(2024, 1, 1), is_draft=False),
            PostRecord("b", utc(2024, 2, 1), is_draft=True),
        ]

    def test_example_site(self):
        xml_content = render_sitemap(BASE, PAGES, self.posts)
        self.assertIn("<loc>https://example.com</loc>", xml_content)
        self.assertIn("<loc>https://example.com/blog</loc>", xml_content)
        self.assertIn("<loc>https://example.com/blog/a</loc>", xml_content)
        self.assertIn("<lastmod>2024-01-01T00:00:00.000Z</lastmod>", xml_content)
        self.assertNotIn("/blog/b", xml_content)
        self.assertNotIn("2024-02-01", xml_content)

    def test_document_header_and_root(self):
        xml_content = render_sitemap(BASE, PAGES, self.posts)
        self.assertTrue(xml_content.startswith('<?xml version="1.0" encoding="UTF-8"?>\n'))
        self.assertIn('<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">', xml_content)
        root = ET.fromstring(xml_content.encode("utf-8"))
        self.assertEqual(root.tag, "{http://www.sitemaps.org/schemas/sitemap/0.9}urlset")

    def test_static_pages_come_first_in_configured_order(self):
        pages = [
            StaticPageEntry("about", ChangeFrequency.YEARLY, 0.3),
            StaticPageEntry("", ChangeFrequency.DAILY, 1.0),
        ]
        posts = [
            PostRecord("newer", utc(2024, 5, 1)),
            PostRecord("older", utc(2023, 5, 1)),
        ]
        self.assertEqual(
            locs(render_sitemap(BASE, pages, posts)),
            [
                "https://example.com/about",
                "https://example.com",
                "https://example.com/blog/newer",
                "https://example.com/blog/older",
            ],
        )

    def test_static_entry_fields(self):
        root = ET.fromstring(render_sitemap(BASE, PAGES, []).encode("utf-8"))
        first = root.find("sm:url", NS)
        self.assertEqual(first.find("sm:changefreq", NS).text, "daily")
        self.assertEqual(first.find("sm:priority", NS).text, "1.0")
        self.assertIsNone(first.find("sm:lastmod", NS))

    def test_post_entry_fields(self):
        root = ET.fromstring(render_sitemap(BASE, [], self.posts).encode("utf-8"))
        entries = root.findall("sm:url", NS)
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].find("sm:lastmod", NS).text, "2024-01-01T00:00:00.000Z")
        self.assertEqual(entries[0].find("sm:changefreq", NS).text, "monthly")
        self.assertEqual(entries[0].find("sm:priority", NS).text, "0.7")

    def test_empty_post_collection(self):
        xml_content = render_sitemap(BASE, PAGES, [])
        self.assertEqual(locs(xml_content), ["https://example.com", "https://example.com/blog"])
        self.assertNotIn("<lastmod>", xml_content)

    def test_each_published_post_listed_once(self):
        posts = [PostRecord(f"post-{i}", utc(2024, 1, 1) + timedelta(days=i)) for i in range(5)]
        xml_content = render_sitemap(BASE, PAGES, posts)
        for post in posts:
            self.assertEqual(xml_content.count(f"<loc>https://example.com/blog/{post.identifier}</loc>"), 1)
            self.assertIn(f"<lastmod>{format_lastmod(post.published_at)}</lastmod>", xml_content)

    def test_output_is_deterministic(self):
        self.assertEqual(render_sitemap(BASE, PAGES, self.posts), render_sitemap(BASE, PAGES, self.posts))

    def test_nested_posts_path(self):
        xml_content = render_sitemap(BASE, PAGES, self.posts, PostPathConvention.BLOG_POSTS)
        self.assertIn("<loc>https://example.com/blog/posts/a</loc>", xml_content)
        self.assertEqual(
            xml_content,
            render_sitemap(BASE, PAGES, self.posts, "blog/posts"),
        )

    def test_malformed_drafts_are_ignored(self):
        posts = [PostRecord("", None, is_draft=True), PostRecord("x", "not a date", is_draft=True)]
        self.assertEqual(locs(render_sitemap(BASE, PAGES, posts)), ["https://example.com", "https://example.com/blog"])

    def test_published_post_without_date_fails(self):
        with self.assertRaises(DataSourceError):
            render_sitemap(BASE, PAGES, [PostRecord("a", None)])

    def test_published_post_with_invalid_date_fails(self):
        with self.assertRaises(DataSourceError):
            render_sitemap(BASE, PAGES, [PostRecord("a", "2024-01-01")])

    def test_published_post_without_identifier_fails(self):
        with self.assertRaises(DataSourceError):
            render_sitemap(BASE, PAGES, [PostRecord("", utc(2024, 1, 1))])

    def test_empty_base_url_fails(self):
        for base_url in ("", "   ", None):
            with self.subTest(base_url=base_url), self.assertRaises(ConfigurationError):
                render_sitemap(base_url, PAGES, self.posts)

    def test_relative_base_url_fails(self):
        with self.assertRaises(ConfigurationError):
            render_sitemap("example.com", PAGES, self.posts)

    def test_trailing_slash_is_not_duplicated(self):
        self.assertEqual(
            locs(render_sitemap("https://example.com/", PAGES, [])),
            ["https://example.com", "https://example.com/blog"],
        )

    def test_unknown_post_path_fails(self):
        with self.assertRaises(ConfigurationError):
            render_sitemap(BASE, PAGES, self.posts, "articles")

    def test_locations_are_escaped(self):
        xml_content = render_sitemap(BASE, [StaticPageEntry("search?a=1&b=2", "weekly", 0.5)], [])
        self.assertIn("<loc>https://example.com/search?a=1&amp;b=2</loc>", xml_content)
        self.assertEqual(locs(xml_content), ["https://example.com/search?a=1&b=2"])

    def test_root_declares_only_sitemap_namespace(self):
        xml_content = render_sitemap(BASE, PAGES, self.posts)
        self.assertIn('\n<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n', xml_content)
        self.assertNotIn("xmlns:xhtml", xml_content)

    def test_base_url_with_path_prefix(self):
        self.assertEqual(
            locs(render_sitemap("https://example.com/site", PAGES, self.posts)),
            ["https://example.com/site", "https://example.com/site/blog", "https://example.com/site/blog/a"],
        )

    def test_mixed_naive_and_aware_dates(self):
        posts = [
            PostRecord("naive", datetime(2024, 1, 2, 3, 4, 5)),
            PostRecord("aware", utc(2024, 1, 1)),
            PostRecord("day", date(2023, 12, 31)),
        ]
        xml_content = render_sitemap(BASE, PAGES, posts)
        self.assertIn("<lastmod>2024-01-02T03:04:05.000Z</lastmod>", xml_content)
        self.assertIn("<lastmod>2023-12-31T00:00:00.000Z</lastmod>", xml_content)

    def test_static_pages_must_be_entries(self):
        for pages in (None, [{"path": "", "changefreq": "daily", "priority": 1.0}], "blog"):
            with self.subTest(pages=pages), self.assertRaises(ConfigurationError):
                render_sitemap(BASE, pages, self.posts)

    def test_posts_must_be_a_collection(self):
        with self.assertRaises(DataSourceError):
            render_sitemap(BASE, PAGES, None)


class FormattingTests(SimpleTestCase):
    def test_lastmod_is_converted_to_utc_with_milliseconds(self):
        value = datetime(2024, 3, 5, 12, 30, 15, 123456, tzinfo=timezone(timedelta(hours=2)))
        self.assertEqual(format_lastmod(value), "2024-03-05T10:30:15.123Z")

    def test_naive_lastmod_is_taken_as_utc(self):
        self.assertEqual(format_lastmod(datetime(2024, 1, 1, 8, 0)), "2024-01-01T08:00:00.000Z")

    def test_plain_date_is_midnight_utc(self):
        self.assertEqual(format_lastmod(date(2024, 1, 1)), "2024-01-01T00:00:00.000Z")

    def test_priority_keeps_one_decimal(self):
        xml_content = render_sitemap(BASE, [
            StaticPageEntry("a", "daily", 1),
            StaticPageEntry("b", "daily", 0.8),
            StaticPageEntry("c", "daily", 0.75),
            StaticPageEntry("d", "daily", 0),
        ], [])
        for text in ("1.0", "0.8", "0.75", "0.0"):
            self.assertIn(f"<priority>{text}</priority>", xml_content)

    def test_small_priority_is_plain_decimal(self):
        xml_content = render_sitemap(BASE, [StaticPageEntry("a", "daily", 0.00001)], [])
        self.assertIn("<priority>0.00001</priority>", xml_content)
        self.assertNotIn("e-", xml_content)

    def test_early_years_are_zero_padded(self):
        self.assertEqual(format_lastmod(datetime(999, 1, 1, tzinfo=timezone.utc)), "0999-01-01T00:00:00.000Z")


class StaticPageEntryTests(SimpleTestCase):
    def test_accepts_string_frequency(self):
        page = StaticPageEntry("/blog/", "weekly", 0.5)
        self.assertEqual(page.changefreq, ChangeFrequency.WEEKLY)
        self.assertEqual(page.path, "blog")

    def test_rejects_unknown_frequency(self):
        with self.assertRaises(ConfigurationError):
            StaticPageEntry("", "fortnightly", 0.5)

    def test_rejects_priority_out_of_range(self):
        for priority in (-0.1, 1.5, "high"):
            with self.subTest(priority=priority), self.assertRaises(ConfigurationError):
                StaticPageEntry("", "daily", priority)


class BuildSitemapTests(SimpleTestCase):
    async def test_fetches_posts_once(self):
        source = FixtureSource([PostRecord("a", utc(2024, 1, 1))])
        xml_content = await build_sitemap(source, BASE, PAGES)
        self.assertEqual(source.calls, 1)
        self.assertIn("<loc>https://example.com/blog/a</loc>", xml_content)

    async def test_configuration_checked_before_fetch(self):
        source = FixtureSource()
        with self.assertRaises(ConfigurationError):
            await build_sitemap(source, "", PAGES)
        with self.assertRaises(ConfigurationError):
            await build_sitemap(source, BASE, PAGES, "news")
        self.assertEqual(source.calls, 0)

    async def test_unreachable_source(self):
        source = FixtureSource(error=ConnectionError("refused"))
        with self.assertRaises(DataSourceError) as ctx:
            await build_sitemap(source, BASE, PAGES)
        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)

    async def test_data_source_error_passes_through(self):
        error = DataSourceError("gone")
        with self.assertRaises(DataSourceError) as ctx:
            await build_sitemap(FixtureSource(error=error), BASE, PAGES)
        self.assertIs(ctx.exception, error)

    async def test_logging_does_not_change_output(self):
        source = FixtureSource([PostRecord("a", utc(2024, 1, 1)), PostRecord("b", utc(2024, 2, 1), True)])
        with self.assertLogs("sitemap.builder", "INFO") as logs:
            logged = await build_sitemap(source, BASE, PAGES)
        self.assertIn("2 post(s) discovered, 1 draft(s) skipped", logs.output[0])
        self.assertIn("3 URL(s) emitted", logs.output[1])
        self.assertEqual(logged, render_sitemap(BASE, PAGES, source.posts))

    async def test_static_pages_checked_before_fetch(self):
        source = FixtureSource()
        for pages in (None, [{"path": "", "changefreq": "daily", "priority": 1.0}], 42):
            with self.subTest(pages=pages), self.assertRaises(ConfigurationError):
                await build_sitemap(source, BASE, pages)
        self.assertEqual(source.calls, 0)

    async def test_source_returning_no_collection(self):
        with self.assertRaises(DataSourceError):
            await build_sitemap(EmptyResponseSource(), BASE, PAGES)

    async def test_source_returning_unreadable_records(self):
        bad_batches = (
            [object()],
            [SimpleNamespace(identifier="a", is_draft=False)],
            [SimpleNamespace(published_at=utc(2024, 1, 1), is_draft=False)],
            [PostRecord(42, utc(2024, 1, 1))],
        )
        for posts in bad_batches:
            with self.subTest(posts=posts), self.assertRaises(DataSourceError):
                await build_sitemap(FixtureSource(posts), BASE, PAGES)


class ConfigTests(SimpleTestCase):
    @override_settings(
        SITEMAP_BASE_URL="https://blog.example.org/",
        SITEMAP_STATIC_PAGES=[{"path": "", "changefreq": "daily", "priority": 1.0}],
        SITEMAP_POST_PATH="blog/posts",
    )
    def test_reads_settings(self):
        config = get_config()
        self.assertEqual(config.base_url, "https://blog.example.org")
        self.assertEqual(config.static_pages, (StaticPageEntry("", ChangeFrequency.DAILY, 1.0),))
        self.assertEqual(config.post_path, PostPathConvention.BLOG_POSTS)

    @override_settings(SITEMAP_BASE_URL="")
    def test_empty_base_url(self):
        with self.assertRaises(ConfigurationError):
            get_config()

    @override_settings(SITEMAP_POST_PATH="posts")
    def test_unknown_post_path(self):
        with self.assertRaises(ConfigurationError):
            get_config()

    def test_malformed_static_pages(self):
        for pages in (None, "home", [{"path": ""}], ["home"]):
            with self.subTest(pages=pages), override_settings(SITEMAP_STATIC_PAGES=pages):
                with self.assertRaises(ConfigurationError):
                    get_config()


@override_settings(SITEMAP_BASE_URL=BASE, SITEMAP_POST_PATH="blog")
class SitemapViewTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        Post.objects.create(title="Hello", slug="hello", status=Post.STATUS_PUBLISHED,
                            published_at=utc(2024, 1, 1))
        Post.objects.create(title="Secret", slug="secret", status=Post.STATUS_DRAFT)

    def test_serves_xml(self):
        res = self.client.get("/sitemap.xml")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res["Content-Type"], "application/xml")
        body = res.content.decode("utf-8")
        self.assertEqual(locs(body), [
            "https://example.com",
            "https://example.com/blog",
            "https://example.com/blog/hello",
        ])
        self.assertIn("<lastmod>2024-01-01T00:00:00.000Z</lastmod>", body)

    def test_repeated_requests_are_identical(self):
        self.assertEqual(self.client.get("/sitemap.xml").content, self.client.get("/sitemap.xml").content)

    def test_post_not_allowed(self):
        self.assertEqual(self.client.post("/sitemap.xml").status_code, 405)

    @override_settings(SITEMAP_BASE_URL="")
    def test_misconfigured(self):
        with self.assertLogs("sitemap.views", "ERROR"):
            res = self.client.get("/sitemap.xml")
        self.assertEqual(res.status_code, 500)
        self.assertNotIn(b"<urlset", res.content)

    def test_source_unavailable(self):
        with mock.patch.object(PostSitemapSource, "get_queryset", side_effect=DatabaseError("locked")):
            with self.assertLogs("sitemap.views", "ERROR"):
                res = self.client.get("/sitemap.xml")
        self.assertEqual(res.status_code, 503)
        self.assertNotIn(b"<urlset", res.content)

    def test_published_post_missing_date(self):
        Post.objects.create(title="Broken", slug="broken", status=Post.STATUS_PUBLISHED)
        with self.assertLogs("sitemap.views", "ERROR"):
            res = self.client.get("/sitemap.xml")
        self.assertEqual(res.status_code, 503)


@override_settings(SITEMAP_BASE_URL=BASE, SITEMAP_POST_PATH="blog/posts")
class BuildSitemapCommandTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        Post.objects.create(title="Hello", slug="hello", status=Post.STATUS_PUBLISHED,
                            published_at=utc(2024, 1, 1))

    def test_writes_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "public", "sitemap.xml")
            out = StringIO()
            call_command("build_sitemap", output=path, stdout=out)
            with open(path, encoding="utf-8") as fh:
                content = fh.read()
        self.assertIn("<loc>https://example.com/blog/posts/hello</loc>", content)
        self.assertIn("with 3 URLs", out.getvalue())

    def test_writes_stdout(self):
        out = StringIO()
        call_command("build_sitemap", output="-", stdout=out)
        self.assertTrue(out.getvalue().startswith('<?xml version="1.0" encoding="UTF-8"?>'))
        self.assertIn("<loc>https://example.com/blog/posts/hello</loc>", out.getvalue())

    @override_settings(SITEMAP_BASE_URL="")
    def test_failure_raises_command_error(self):
        with self.assertRaises(CommandError):
            call_command("build_sitemap", output="-", stdout=StringIO())
