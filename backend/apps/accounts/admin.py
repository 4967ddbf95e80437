from django import forms
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from django.utils.html import format_html
from django.utils.timezone import localtime
from import_export import resources, fields, widgets
from import_export.admin import ImportExportModelAdmin, ImportExportMixin
from .models import User, UserRole


class PhoneUserCreationForm(forms.ModelForm):
    class Meta:
        model = User
        fields = ('phone', 'first_name', 'last_name', 'email')

    def save(self, commit=True):
        user = super().save(commit=False)
        user.set_unusable_password()
        if commit:
            user.save()
        return user


class UserRoleInline(admin.TabularInline):
    model = UserRole
    extra = 1
    fields = ('role',)


class UserResource(resources.ModelResource):
    class Meta:
        model = User
        import_id_fields = ('phone',)
        fields = ('id', 'phone', 'first_name', 'last_name', 'email', 'is_active', 'is_staff', 'created_at')


class UserRoleResource(resources.ModelResource):
    user = fields.Field(
        column_name='user',
        attribute='user',
        widget=widgets.ForeignKeyWidget(User, 'phone')
    )

    class Meta:
        model = UserRole
        fields = ('id', 'user', 'role')


@admin.register(User)
class PhoneUserAdmin(ImportExportMixin, UserAdmin):
    resource_class = UserResource
    add_form = PhoneUserCreationForm

    list_display = ('phone', 'full_name', 'roles_display', 'staff_badge', 'joined')
    list_filter = ('is_active', 'is_staff', 'roles__role')
    search_fields = ('phone', 'email', 'first_name', 'last_name')
    ordering = ('-created_at',)
    list_per_page = 25
    actions = ['make_staff', 'remove_staff']
    inlines = [UserRoleInline]

    fieldsets = (
        ('Authentication Info', {'fields': ('phone',)}),
        ('Personal Info', {'fields': ('first_name', 'last_name', 'email')}),
        ('Permissions', {'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions')}),
        ('Important Dates', {'fields': ('last_login', 'created_at'), 'classes': ('collapse',)}),
    )
    add_fieldsets = (
        ('Authentication Info', {'classes': ('wide',), 'fields': ('phone',)}),
        ('Personal Info', {'classes': ('wide',), 'fields': ('first_name', 'last_name', 'email')}),
        ('Permissions', {'classes': ('wide',), 'fields': ('is_active', 'is_staff')}),
    )
    readonly_fields = ('created_at', 'last_login')

    def full_name(self, obj):
        return f"{obj.first_name} {obj.last_name}".strip() or "N/A"
    full_name.short_description = "Name"

    def roles_display(self, obj):
        names = [role.get_role_display() for role in obj.roles.all()]
        if not names:
            return format_html('<span style="color: orange;">No roles</span>')
        return ", ".join(names)
    roles_display.short_description = "Roles"

    def staff_badge(self, obj):
        if obj.is_staff:
            return format_html('<span style="color: blue; font-weight: bold;">Platform admin</span>')
        return "-"
    staff_badge.short_description = "Staff"

    def joined(self, obj):
        return localtime(obj.created_at).strftime('%d/%m/%Y %H:%M')
    joined.admin_order_field = 'created_at'

    @admin.action(description='Make selected users platform admins')
    def make_staff(self, request, queryset):
        updated = queryset.update(is_staff=True)
        self.message_user(request, f"{updated} users made staff.")

    @admin.action(description='Remove platform admin status')
    def remove_staff(self, request, queryset):
        updated = queryset.update(is_staff=False)
        self.message_user(request, f"{updated} users removed from staff.")


@admin.register(UserRole)
class UserRoleAdmin(ImportExportModelAdmin):
    resource_class = UserRoleResource
    list_display = ('user', 'role_badge')
    list_filter = ('role',)
    search_fields = ('user__phone',)
    raw_id_fields = ('user',)

    def role_badge(self, obj):
        color = '#fd7e14' if obj.role == 'seller' else '#6c757d'
        return format_html(
            '<span style="background-color: {}; color: white; padding: 2px 6px; border-radius: 3px;">{}</span>',
            color,
            obj.get_role_display()
        )
    role_badge.short_description = "Role"
