from django.contrib import admin
from django.utils.html import format_html
from django.utils.timezone import localtime
from import_export import resources, fields
from import_export.widgets import ForeignKeyWidget
from import_export.admin import ImportExportModelAdmin

from apps.orders.models import Order
from .models import Drone, DroneOrder, DroneAssignment
from .services import DroneRegistryService, get_dispatch_coordinator


STATUS_COLORS = {
    'idle': '#6c757d',
    'assigned': '#007bff',
    'launched': '#17a2b8',
    'in_flight': '#17a2b8',
    'en_route_to_shop': '#20c997',
    'landed': '#28a745',
    'returning': '#ffc107',
    'stopped': '#dc3545',
    'pending': '#6c757d',
    'weather_blocked': '#fd7e14',
    'preparing': '#ffc107',
    'drone_dispatched': '#17a2b8',
    'drone_en_route_to_shop': '#20c997',
    'out_for_delivery': '#007bff',
    'delivered': '#28a745',
    'cancelled': '#dc3545',
    'released': '#6c757d',
}


def status_badge(label, value):
    return format_html(
        '<span style="background-color: {}; color: white; padding: 2px 6px; border-radius: 3px; font-size: 0.8em;">{}</span>',
        STATUS_COLORS.get(value, '#6c757d'),
        label,
    )


class DroneResource(resources.ModelResource):
    class Meta:
        model = Drone
        import_id_fields = ('drone_id',)
        fields = ('drone_id', 'battery', 'latitude', 'longitude', 'altitude', 'status', 'destination')


class DroneOrderResource(resources.ModelResource):
    order = fields.Field(
        column_name='order_id',
        attribute='order',
        widget=ForeignKeyWidget(Order, 'id')
    )
    drone = fields.Field(
        column_name='drone_id',
        attribute='drone',
        widget=ForeignKeyWidget(Drone, 'drone_id')
    )

    class Meta:
        model = DroneOrder
        fields = (
            'id', 'order', 'drone', 'status', 'cancelled_by', 'cancellation_reason',
            'estimated_delivery_time', 'actual_delivery_time', 'created_at',
        )
        export_order = fields


@admin.register(Drone)
class DroneAdmin(ImportExportModelAdmin):
    resource_class = DroneResource
    list_display = ('drone_id', 'status_display', 'battery_display', 'altitude', 'destination', 'updated_at_date')
    list_filter = ('status',)
    search_fields = ('drone_id', 'destination')
    list_per_page = 25
    actions = ['land_drones', 'return_drones', 'emergency_stop', 'reset_to_idle']

    def status_display(self, obj):
        return status_badge(obj.get_status_display(), obj.status)
    status_display.short_description = "Status"

    def battery_display(self, obj):
        color = '#dc3545' if obj.battery <= 15 else ('#ffc107' if obj.battery <= 20 else '#28a745')
        return format_html('<span style="color: {}; font-weight: bold;">{}%</span>', color, obj.battery)
    battery_display.short_description = "Battery"
    battery_display.admin_order_field = 'battery'

    def updated_at_date(self, obj):
        return localtime(obj.updated_at).strftime('%d/%m/%Y %H:%M')
    updated_at_date.short_description = "Last Update"

    @admin.action(description='Land selected drones')
    def land_drones(self, request, queryset):
        coordinator = get_dispatch_coordinator()
        for drone in queryset:
            coordinator.land(drone.drone_id)
        self.message_user(request, f"{queryset.count()} drones landed.")

    @admin.action(description='Return selected drones to base')
    def return_drones(self, request, queryset):
        coordinator = get_dispatch_coordinator()
        for drone in queryset:
            coordinator.return_to_base(drone.drone_id)
        self.message_user(request, f"{queryset.count()} drones returning.")

    @admin.action(description='EMERGENCY STOP selected drones')
    def emergency_stop(self, request, queryset):
        coordinator = get_dispatch_coordinator()
        for drone in queryset:
            coordinator.emergency_stop(drone.drone_id)
        self.message_user(request, f"Emergency stop executed for {queryset.count()} drones.")

    @admin.action(description='Reset selected drones to idle')
    def reset_to_idle(self, request, queryset):
        for drone in queryset:
            DroneRegistryService.release_to_idle(drone)
        self.message_user(request, f"{queryset.count()} drones reset to idle.")


@admin.register(DroneOrder)
class DroneOrderAdmin(ImportExportModelAdmin):
    resource_class = DroneOrderResource
    list_display = ('order_id', 'user', 'drone', 'status_display', 'weather_display', 'cancelled_by', 'created_at_date')
    list_filter = ('status', 'cancelled_by', 'created_at')
    search_fields = ('order__id', 'user__phone', 'drone__drone_id', 'qr_code')
    list_select_related = ('user', 'drone')
    raw_id_fields = ('order', 'user', 'seller', 'drone')
    readonly_fields = ('qr_code', 'weather_check', 'created_at', 'updated_at')
    list_per_page = 25

    fieldsets = (
        ('Order', {'fields': ('order', 'user', 'seller', 'status', 'drone')}),
        ('Verification', {'fields': ('qr_code', 'qr_expires_at')}),
        ('Route', {
            'fields': ('pickup_location', 'delivery_location', 'current_location', 'shop_location'),
            'classes': ('collapse',)
        }),
        ('Weather', {'fields': ('weather_check',), 'classes': ('collapse',)}),
        ('Timeline', {'fields': ('estimated_delivery_time', 'actual_delivery_time', 'created_at', 'updated_at')}),
        ('Cancellation', {'fields': ('cancelled_by', 'cancellation_reason', 'admin_notes')}),
    )

    def status_display(self, obj):
        return status_badge(obj.get_status_display(), obj.status)
    status_display.short_description = "Status"

    def weather_display(self, obj):
        check = obj.weather_check or {}
        if check.get("error"):
            return format_html('<span style="color: #fd7e14;">API error</span>')
        if check.get("is_safe"):
            return format_html('<span style="color: green;">✓ Safe</span>')
        return format_html('<span style="color: red;">✗ Unsafe</span>')
    weather_display.short_description = "Weather"

    def created_at_date(self, obj):
        return localtime(obj.created_at).strftime('%d/%m/%Y %H:%M')
    created_at_date.short_description = "Created"
    created_at_date.admin_order_field = 'created_at'


@admin.register(DroneAssignment)
class DroneAssignmentAdmin(admin.ModelAdmin):
    list_display = ('order_id', 'drone', 'status_display', 'assigned_at', 'released_at')
    list_filter = ('status',)
    search_fields = ('order__id', 'drone__drone_id')
    list_select_related = ('drone',)
    raw_id_fields = ('order', 'drone')

    def status_display(self, obj):
        return status_badge(obj.get_status_display(), obj.status)
    status_display.short_description = "Status"
