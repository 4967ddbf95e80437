from django.contrib import admin
from django.utils.html import format_html
from django.utils.timezone import localtime
from import_export import resources, fields
from import_export.widgets import ForeignKeyWidget
from import_export.admin import ImportExportModelAdmin

from apps.orders.models import Order
from apps.shops.models import Shop
from .models import Delivery
from .services import DeliveryService


class DeliveryResource(resources.ModelResource):
    order = fields.Field(
        column_name='order_id',
        attribute='order',
        widget=ForeignKeyWidget(Order, 'id')
    )
    shop = fields.Field(
        column_name='shop',
        attribute='shop',
        widget=ForeignKeyWidget(Shop, 'name')
    )

    class Meta:
        model = Delivery
        fields = (
            'id',
            'order',
            'shop',
            'delivery_mode',
            'status',
            'eta_minutes',
            'delivery_partner',
            'created_at',
            'updated_at'
        )
        export_order = fields


@admin.register(Delivery)
class DeliveryAdmin(ImportExportModelAdmin):
    resource_class = DeliveryResource

    list_display = ('order_id_display', 'shop', 'delivery_mode', 'status_badge', 'delivery_partner', 'created_at_date')
    list_filter = ('status', 'delivery_mode', 'created_at')
    search_fields = ('order__id', 'shop__name', 'delivery_partner')
    list_select_related = ('order', 'shop')
    raw_id_fields = ('order', 'shop')
    list_per_page = 25
    actions = ['mark_delivered']

    fieldsets = (
        ('Order & Shop', {
            'fields': ('order', 'shop', 'delivery_mode')
        }),
        ('Delivery Details', {
            'fields': ('status', 'eta_minutes', 'delivery_partner', 'notes', 'qr_expiry')
        }),
        ('Tracking', {
            'fields': ('current_location', 'route', 'status_history'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )
    readonly_fields = ('created_at', 'updated_at', 'qr_expiry', 'route', 'status_history')

    def order_id_display(self, obj):
        return f"#{obj.order_id}"
    order_id_display.short_description = "Order ID"
    order_id_display.admin_order_field = 'order__id'

    def status_badge(self, obj):
        colors = {
            'unassigned': '#6c757d',
            'assigned': '#007bff',
            'preparing': '#ffc107',
            'out_for_delivery': '#17a2b8',
            'nearby': '#20c997',
            'delivered': '#28a745',
            'cancelled': '#dc3545',
        }
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 8px; border-radius: 4px; font-size: 0.8em;">{}</span>',
            colors.get(obj.status, '#6c757d'),
            obj.get_status_display()
        )
    status_badge.short_description = "Status"

    def created_at_date(self, obj):
        return localtime(obj.created_at).strftime('%d/%m/%Y %H:%M')
    created_at_date.short_description = "Created"
    created_at_date.admin_order_field = 'created_at'

    @admin.action(description='Mark selected deliveries as delivered')
    def mark_delivered(self, request, queryset):
        for delivery in queryset.exclude(status="delivered"):
            DeliveryService.mark_delivery_completed(delivery.id, notes="Marked as delivered from admin")
        self.message_user(request, "Selected deliveries marked as delivered.")
