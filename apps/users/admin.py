"""Admin registrations for the users domain."""

from __future__ import annotations

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import CustomUser, RealtorProfile


class RealtorProfileInline(admin.StackedInline):
    model = RealtorProfile
    fk_name = "user"
    can_delete = False
    exclude = ("account_number",)
    readonly_fields = ("payout_recipient_code", "status_changed_at", "status_changed_by")


@admin.register(CustomUser)
class CustomUserAdmin(BaseUserAdmin):
    inlines = (RealtorProfileInline,)
    fieldsets = (
        (None, {"fields": ("email", "password")}),
        (_("Personal info"), {"fields": ("username", "first_name", "last_name", "phone")}),
        (_("Role"), {"fields": ("role", "is_email_verified")}),
        (_("Security"), {"fields": ("failed_login_attempts", "locked_until")}),
        (
            _("Permissions"),
            {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")},
        ),
        (_("Important dates"), {"fields": ("last_login", "date_joined", "created_at", "updated_at")}),
    )
    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "password1", "password2", "phone", "role", "is_staff"),
            },
        ),
    )
    list_display = ("email", "role", "phone", "is_active", "is_staff", "is_locked")
    list_filter = ("role", "is_active", "is_staff")
    search_fields = ("email", "phone", "first_name", "last_name")
    ordering = ("email",)
    readonly_fields = ("created_at", "updated_at", "date_joined")


@admin.register(RealtorProfile)
class RealtorProfileAdmin(admin.ModelAdmin):
    list_display = ("business_name", "user", "status", "has_payout_account", "created_at")
    list_filter = ("status",)
    search_fields = ("business_name", "user__email")
    exclude = ("account_number",)
    readonly_fields = ("payout_recipient_code", "status_changed_at", "status_changed_by", "created_at")
