from django.contrib import admin, messages

from .cleanup import ProductRepository, disable_product, remove_from_storefronts
from .models import Product, Website


class MessageReporter:
    """Collects cleanup progress as admin messages."""

    def __init__(self, modeladmin, request):
        self.modeladmin = modeladmin
        self.request = request

    def info(self, text):
        self.modeladmin.message_user(self.request, text, messages.SUCCESS)

    def warning(self, text):
        self.modeladmin.message_user(self.request, text, messages.WARNING)

    def error(self, text):
        self.modeladmin.message_user(self.request, text, messages.ERROR)


def _apply(routine, modeladmin, request, queryset):
    repository = ProductRepository()
    reporter = MessageReporter(modeladmin, request)
    for product in queryset:
        routine(product, repository, reporter, False)


@admin.register(Website)
class WebsiteAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "is_active")
    search_fields = ("code", "name")
    list_filter = ("is_active",)
    ordering = ("code",)


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "supplier", "status", "store_id", "last_import_date")
    search_fields = ("code", "name", "supplier")
    list_filter = ("status", "supplier", "websites")
    filter_horizontal = ("websites",)
    ordering = ("code",)
    actions = ("disable_selected", "remove_selected_from_storefronts")

    @admin.action(description="Disable selected products")
    def disable_selected(self, request, queryset):
        _apply(disable_product, self, request, queryset)

    @admin.action(description="Remove selected products from storefronts")
    def remove_selected_from_storefronts(self, request, queryset):
        _apply(remove_from_storefronts, self, request, queryset)
