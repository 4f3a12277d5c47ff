import logging

from django.http import HttpResponse
from django.views.decorators.http import require_safe

from blogs.sitemaps import PostSitemapSource
from .builder import CONTENT_TYPE, build_sitemap
from .conf import get_config
from .exceptions import ConfigurationError, DataSourceError

logger = logging.getLogger(__name__)


@require_safe
async def sitemap_xml(request):
    try:
        config = get_config()
        xml_content = await build_sitemap(
            PostSitemapSource(), config.base_url, config.static_pages, config.post_path
        )
    except ConfigurationError:
        logger.exception("Sitemap is misconfigured")
        return HttpResponse("Sitemap is misconfigured.", status=500, content_type="text/plain")
    except DataSourceError:
        logger.exception("Sitemap content source failed")
        return HttpResponse("Sitemap is temporarily unavailable.", status=503, content_type="text/plain")
    return HttpResponse(xml_content, content_type=CONTENT_TYPE)
