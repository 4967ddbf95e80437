from django.contrib import admin
from django.utils.html import format_html
from import_export import resources, fields, widgets
from import_export.admin import ImportExportModelAdmin

from apps.accounts.models import User
from .models import Shop


class ShopResource(resources.ModelResource):
    seller = fields.Field(
        column_name='seller',
        attribute='seller',
        widget=widgets.ForeignKeyWidget(User, 'phone')
    )

    class Meta:
        model = Shop
        fields = ('id', 'seller', 'name', 'latitude', 'longitude', 'is_active')


@admin.register(Shop)
class ShopAdmin(ImportExportModelAdmin):
    resource_class = ShopResource
    list_display = ('name', 'seller', 'coordinates', 'active_badge')
    list_filter = ('is_active',)
    search_fields = ('name', 'seller__phone')
    raw_id_fields = ('seller',)
    actions = ['deactivate']

    def coordinates(self, obj):
        if obj.location is None:
            return "-"
        return f"{obj.latitude:.5f}, {obj.longitude:.5f}"

    def active_badge(self, obj):
        if obj.is_active:
            return format_html('<span style="color: green; font-weight: bold;">✓ Open</span>')
        return format_html('<span style="color: red;">✗ Closed</span>')
    active_badge.short_description = "Status"

    @admin.action(description='Close selected shops')
    def deactivate(self, request, queryset):
        updated = queryset.update(is_active=False)
        self.message_user(request, f"{updated} shops closed.")
