from django.contrib import admin
from django.contrib.auth import get_user_model
from django.utils.html import format_html
from django.utils.timezone import localtime
from import_export import resources, fields, widgets
from import_export.admin import ExportMixin
from .models import AuditLog

User = get_user_model()


class AuditLogResource(resources.ModelResource):
    user = fields.Field(
        column_name='user',
        attribute='user',
        widget=widgets.ForeignKeyWidget(User, 'phone')
    )

    class Meta:
        model = AuditLog
        fields = ('id', 'action', 'reference_id', 'user', 'metadata', 'created_at')


@admin.register(AuditLog)
class AuditLogAdmin(ExportMixin, admin.ModelAdmin):
    resource_class = AuditLogResource
    list_display = ('action_badge', 'reference_id', 'user_info', 'metadata_preview', 'created_at_date')
    list_filter = ('action', 'created_at')
    search_fields = ('reference_id', 'user__phone')
    list_select_related = ('user',)
    list_per_page = 25
    readonly_fields = ('action', 'reference_id', 'user', 'metadata', 'created_at')

    ACTION_COLORS = {
        'drone_fallback': '#fd7e14',
        'drone_emergency_stop': '#dc3545',
        'drone_order_cancelled': '#dc3545',
        'qr_code_verified': '#28a745',
        'delivery_completed': '#28a745',
        'drone_launched': '#007bff',
    }

    def action_badge(self, obj):
        color = self.ACTION_COLORS.get(obj.action, '#6c757d')
        return format_html(
            '<span style="background-color: {}; color: white; padding: 2px 6px; border-radius: 3px; font-size: 0.8em;">{}</span>',
            color,
            obj.get_action_display()
        )
    action_badge.short_description = "Action"

    def user_info(self, obj):
        return obj.user.phone if obj.user else "System"
    user_info.short_description = "User"

    def metadata_preview(self, obj):
        preview = str(obj.metadata or "")
        return preview[:50] + "..." if len(preview) > 50 else preview
    metadata_preview.short_description = "Metadata"

    def created_at_date(self, obj):
        return localtime(obj.created_at).strftime('%d/%m/%Y %H:%M:%S')
    created_at_date.short_description = "Timestamp"
    created_at_date.admin_order_field = 'created_at'

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False
