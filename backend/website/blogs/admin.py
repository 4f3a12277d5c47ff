from django.contrib import admin
from .models import Post


@admin.register(Post)
class PostAdmin(admin.ModelAdmin):
    """
    Editorial controls for posts. Only published posts reach the sitemap,
    so the status actions below are how a post is listed or withdrawn.
    """
    list_display = ['title', 'slug', 'status', 'published_at', 'updated_at']
    list_filter = ['status', 'published_at']
    prepopulated_fields = {'slug': ('title',)}
    search_fields = ['title', 'summary', 'content']
    readonly_fields = ['created_at', 'updated_at']
    actions = ['make_published', 'make_draft', 'make_archived']

    def make_published(self, request, queryset):
        queryset.update(status=Post.STATUS_PUBLISHED)
    make_published.short_description = "Mark selected posts as published"

    def make_draft(self, request, queryset):
        queryset.update(status=Post.STATUS_DRAFT)
    make_draft.short_description = "Mark selected posts as draft"

    def make_archived(self, request, queryset):
        queryset.update(status=Post.STATUS_ARCHIVED)
    make_archived.short_description = "Mark selected posts as archived"
