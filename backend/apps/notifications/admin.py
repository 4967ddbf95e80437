# apps/notifications/admin.py
from django.contrib import admin
from django.utils.html import format_html
from django.utils.timezone import localtime
from .models import Notification
from .tasks import push_notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = (
        'user_phone',
        'type_badge',
        'title',
        'message_preview',
        'order_ref',
        'is_read',
        'created_at_date'
    )
    list_filter = ('type', 'is_read', 'created_at')
    search_fields = ('user__phone', 'title', 'message')
    list_select_related = ('user',)
    raw_id_fields = ('user',)
    list_per_page = 25
    actions = ['mark_read', 'repush']

    fieldsets = (
        ('Recipient', {
            'fields': ('user',)
        }),
        ('Notification Details', {
            'fields': ('type', 'title', 'message', 'metadata', 'is_read')
        }),
        ('Timestamps', {
            'fields': ('created_at',),
            'classes': ('collapse',)
        }),
    )
    readonly_fields = ('created_at',)

    def user_phone(self, obj):
        return obj.user.phone
    user_phone.short_description = "User"
    user_phone.admin_order_field = 'user__phone'

    def type_badge(self, obj):
        colors = {
            'success': '#28a745',
            'error': '#dc3545',
            'warning': '#ffc107',
            'info': '#17a2b8',
        }
        color = colors.get(obj.type, '#6c757d')
        return format_html(
            '<span style="background-color: {}; color: white; padding: 2px 6px; border-radius: 3px; font-size: 0.8em;">{}</span>',
            color,
            obj.get_type_display()
        )
    type_badge.short_description = "Type"

    def message_preview(self, obj):
        return obj.message[:50] + "..." if len(obj.message) > 50 else obj.message
    message_preview.short_description = "Message"

    def order_ref(self, obj):
        order_id = (obj.metadata or {}).get('order_id')
        return f"#{order_id}" if order_id else "-"
    order_ref.short_description = "Order"

    def created_at_date(self, obj):
        return localtime(obj.created_at).strftime('%d/%m/%Y %H:%M')
    created_at_date.short_description = "Sent"
    created_at_date.admin_order_field = 'created_at'

    @admin.action(description='Mark selected notifications as read')
    def mark_read(self, request, queryset):
        updated = queryset.update(is_read=True)
        self.message_user(request, f"{updated} notifications marked as read.")

    @admin.action(description='Re-send to the live tracking socket')
    def repush(self, request, queryset):
        ids = list(queryset.values_list('id', flat=True))
        for notification_id in ids:
            push_notification.delay(notification_id)
        self.message_user(request, f"{len(ids)} notifications queued for push.")
