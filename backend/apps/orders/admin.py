from django.contrib import admin
from django.contrib.auth import get_user_model
from django.utils.html import format_html
from django.utils.timezone import localtime
from import_export import resources, fields
from import_export.widgets import ForeignKeyWidget
from import_export.admin import ImportExportModelAdmin

from .models import Order, OrderShop

User = get_user_model()


class OrderResource(resources.ModelResource):
    user = fields.Field(
        column_name='user_phone',
        attribute='user',
        widget=ForeignKeyWidget(User, 'phone')
    )

    class Meta:
        model = Order
        fields = (
            'id',
            'user',
            'delivery_type',
            'fallback_reason',
            'delivery_status',
            'total_amount',
            'delivery_location',
            'pickup_location',
            'created_at',
        )
        export_order = fields


class OrderShopInline(admin.TabularInline):
    model = OrderShop
    extra = 0
    fields = ('shop', 'status', 'subtotal', 'cancel_reason')
    raw_id_fields = ('shop',)


@admin.register(Order)
class OrderAdmin(ImportExportModelAdmin):
    resource_class = OrderResource
    list_display = ('id', 'user', 'delivery_type_badge', 'fallback_reason', 'delivery_status', 'total_amount', 'created_at_date')
    list_filter = ('delivery_type', 'fallback_reason', 'delivery_status', 'created_at')
    search_fields = ('id', 'user__phone')
    list_select_related = ('user',)
    raw_id_fields = ('user',)
    inlines = [OrderShopInline]
    list_per_page = 25

    def delivery_type_badge(self, obj):
        color = '#17a2b8' if obj.delivery_type == 'drone' else '#6c757d'
        return format_html(
            '<span style="background-color: {}; color: white; padding: 2px 6px; border-radius: 3px; font-size: 0.8em;">{}</span>',
            color,
            obj.get_delivery_type_display()
        )
    delivery_type_badge.short_description = "Delivery"

    def created_at_date(self, obj):
        return localtime(obj.created_at).strftime('%d/%m/%Y %H:%M')
    created_at_date.short_description = "Placed"
    created_at_date.admin_order_field = 'created_at'
