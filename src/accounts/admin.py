"""Admin configuration for accounts app."""

from unfold.admin import ModelAdmin
from unfold.decorators import display

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .forms import CustomUserChangeForm, CustomUserCreationForm
from .models import CustomUser


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin, ModelAdmin):
    add_form = CustomUserCreationForm
    form = CustomUserChangeForm
    model = CustomUser
    list_display = [
        "display_user",
        "email",
        "employee_id",
        "manager",
        "display_groups",
        "is_active",
    ]
    list_filter = [
        "is_active",
        "is_staff",
        "is_superuser",
        "groups",
    ]
    search_fields = [
        "username",
        "email",
        "display_name",
        "employee_id",
        "first_name",
        "last_name",
    ]
    filter_horizontal = ["groups", "user_permissions"]
    autocomplete_fields = ["manager"]
    fieldsets = (
        (
            "Profile",
            {
                "classes": ["tab"],
                "fields": (
                    "username",
                    "password",
                    "display_name",
                    "first_name",
                    "last_name",
                    "email",
                    "employee_id",
                    "manager",
                ),
            },
        ),
        (
            "Permissions",
            {
                "classes": ["tab"],
                "fields": (
                    "is_active",
                    "is_staff",
                    "is_superuser",
                    "groups",
                    "user_permissions",
                ),
            },
        ),
        (
            "Activity",
            {
                "classes": ["tab"],
                "fields": (
                    "last_login",
                    "date_joined",
                    "display_direct_reports",
                ),
            },
        ),
    )
    readonly_fields = [
        "display_direct_reports",
        "last_login",
        "date_joined",
    ]
    add_fieldsets = UserAdmin.add_fieldsets + (
        (
            "Additional Info",
            {"fields": ("email", "display_name", "employee_id")},
        ),
    )

    def display_direct_reports(self, obj):
        if not obj.pk:
            return "-"
        reports = obj.direct_reports.all()
        if reports:
            return ", ".join(str(r) for r in reports)
        return "None"

    display_direct_reports.short_description = "Direct Reports"

    @display(description="User", header=True, ordering="username")
    def display_user(self, obj):
        name = obj.display_name or obj.get_full_name() or obj.username
        return name, obj.username

    @display(description="Groups")
    def display_groups(self, obj):
        groups = obj.groups.all()
        if groups:
            return ", ".join(g.name for g in groups)
        return "-"
