from pathlib import Path

from asgiref.sync import async_to_sync
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from blogs.sitemaps import PostSitemapSource
from sitemap.builder import build_sitemap
from sitemap.conf import get_config
from sitemap.exceptions import SitemapError


class Command(BaseCommand):
    help = 'Write the XML sitemap for the site to a file'

    def add_arguments(self, parser):
        parser.add_argument(
            '--output', '-o',
            default=None,
            help="Destination file (default: settings.SITEMAP_OUTPUT). Use '-' for stdout.",
        )

    def handle(self, *args, **options):
        output = options['output'] or getattr(settings, 'SITEMAP_OUTPUT', 'sitemap.xml')
        try:
            config = get_config()
            xml_content = async_to_sync(build_sitemap)(
                PostSitemapSource(), config.base_url, config.static_pages, config.post_path
            )
        except SitemapError as exc:
            raise CommandError(f"Sitemap build failed: {exc}") from exc

        if output == '-':
            self.stdout.write(xml_content, ending='')
            return

        out = Path(output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(xml_content, encoding='utf-8')
        count = xml_content.count('<url>')
        self.stdout.write(self.style.SUCCESS(f'Wrote {out} with {count} URLs'))
