from django.urls import path
from .views import sitemap_xml

urlpatterns = [
    path("sitemap.xml", sitemap_xml, name="sitemap-xml"),
]
