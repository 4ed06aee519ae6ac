"""Admin configuration for the equipment app using django-unfold.

Custody status, the validation ledger and audit progress are read-only
here. Changes to them go through the engine services so every write is
logged.
"""

from unfold.admin import ModelAdmin, TabularInline
from unfold.contrib.filters.admin import (
    ChoicesDropdownFilter,
    RelatedDropdownFilter,
)
from unfold.decorators import action, display

from django.contrib import admin, messages

from .exceptions import CustodyError
from .models import (
    Assignment,
    AuditSession,
    Category,
    CustodyEvent,
    Department,
    Equipment,
    EquipmentModel,
    Site,
)
from .services.state import transition_equipment
from .services.transfers import approve, restore_rejected

STATUS_LABELS = {
    "available": "success",
    "pending_validation": "warning",
    "assigned": "info",
    "in_repair": "warning",
    "in_storage": "default",
    "decommissioned": "danger",
}


class DepartmentInline(TabularInline):
    model = Department
    extra = 0
    fields = ["name"]


@admin.register(Site)
class SiteAdmin(ModelAdmin):
    list_display = ["name", "country", "display_equipment_count"]
    search_fields = ["name", "country"]
    inlines = [DepartmentInline]

    @display(description="Equipment")
    def display_equipment_count(self, obj):
        return obj.equipment.count()


@admin.register(Department)
class DepartmentAdmin(ModelAdmin):
    list_display = ["name", "site", "display_equipment_count"]
    list_filter = [("site", RelatedDropdownFilter)]
    search_fields = ["name", "site__name"]
    autocomplete_fields = ["site"]

    @display(description="Equipment")
    def display_equipment_count(self, obj):
        return obj.equipment.count()


@admin.register(Category)
class CategoryAdmin(ModelAdmin):
    list_display = ["name", "icon"]
    search_fields = ["name", "description"]


@admin.register(EquipmentModel)
class EquipmentModelAdmin(ModelAdmin):
    list_display = ["name", "brand", "model_number", "category"]
    list_filter = [("category", RelatedDropdownFilter)]
    search_fields = ["name", "brand", "model_number"]
    autocomplete_fields = ["category"]


class AssignmentInline(TabularInline):
    model = Assignment
    fk_name = "equipment"
    extra = 0
    can_delete = False
    fields = ["action", "user", "manager", "status", "created_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Equipment)
class EquipmentAdmin(ModelAdmin):
    list_display = [
        "asset_tag",
        "name",
        "equipment_model",
        "display_status",
        "site",
        "department",
        "updated_at",
    ]
    list_filter = [
        ("status", ChoicesDropdownFilter),
        ("site", RelatedDropdownFilter),
        ("department", RelatedDropdownFilter),
        ("equipment_model__category", RelatedDropdownFilter),
    ]
    list_filter_submit = True
    search_fields = ["asset_tag", "name", "equipment_model__name", "notes"]
    readonly_fields = [
        "status",
        "pending_assignment",
        "created_at",
        "updated_at",
    ]
    autocomplete_fields = ["equipment_model", "site", "department"]
    inlines = [AssignmentInline]
    actions = ["mark_available", "mark_in_repair", "mark_in_storage"]

    fieldsets = (
        (
            None,
            {
                "fields": (
                    "asset_tag",
                    "name",
                    "equipment_model",
                    "status",
                    "pending_assignment",
                    "site",
                    "department",
                )
            },
        ),
        (
            "Details",
            {
                "fields": (
                    "purchase_date",
                    "warranty_end_date",
                    "notes",
                    "created_at",
                    "updated_at",
                ),
                "classes": ["tab"],
            },
        ),
    )

    @display(description="Status", label=STATUS_LABELS)
    def display_status(self, obj):
        return obj.status

    def _transition(self, request, queryset, new_status):
        done = 0
        for equipment in queryset:
            try:
                transition_equipment(
                    equipment.pk, new_status, performed_by=request.user
                )
            except CustodyError as e:
                messages.error(request, f"{equipment.asset_tag}: {e.message}")
            else:
                done += 1
        if done:
            messages.success(
                request, f"{done} item(s) marked as {new_status}."
            )

    @action(description="Mark as available")
    def mark_available(self, request, queryset):
        self._transition(request, queryset, "available")

    @action(description="Mark as in repair")
    def mark_in_repair(self, request, queryset):
        self._transition(request, queryset, "in_repair")

    @action(description="Mark as in storage")
    def mark_in_storage(self, request, queryset):
        self._transition(request, queryset, "in_storage")


@admin.register(Assignment)
class AssignmentAdmin(ModelAdmin):
    list_display = [
        "equipment",
        "display_action",
        "user",
        "manager",
        "display_status",
        "it_validated",
        "manager_validated",
        "user_validated",
        "created_at",
    ]
    list_filter = [
        ("status", ChoicesDropdownFilter),
        ("action", ChoicesDropdownFilter),
    ]
    search_fields = [
        "equipment__asset_tag",
        "user__username",
        "user__display_name",
        "manager__username",
    ]
    date_hierarchy = "created_at"
    readonly_fields = [
        "action",
        "equipment",
        "user",
        "manager",
        "requested_by",
        "status",
        "rejection_reason",
        "it_validated",
        "it_validated_by",
        "it_validated_at",
        "manager_validated",
        "manager_validated_by",
        "manager_validated_at",
        "user_validated",
        "user_validated_by",
        "user_validated_at",
        "created_at",
        "updated_at",
    ]
    actions = ["validate_as_it", "restore_selected"]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(
        description="Action",
        label={"assign": "info", "return": "success"},
    )
    def display_action(self, obj):
        return obj.action

    @display(
        description="Status",
        label={
            "pending": "warning",
            "approved": "success",
            "rejected": "danger",
        },
    )
    def display_status(self, obj):
        return obj.status

    def _run(self, request, queryset, command, verb):
        done = 0
        for assignment in queryset:
            try:
                command(assignment)
            except CustodyError as e:
                messages.error(request, f"#{assignment.pk}: {e.message}")
            else:
                done += 1
        if done:
            messages.success(request, f"{done} transfer(s) {verb}.")

    @action(description="Validate as IT")
    def validate_as_it(self, request, queryset):
        self._run(
            request,
            queryset,
            lambda a: approve(a.pk, "it", request.user),
            "validated",
        )

    @action(description="Restore rejected transfers")
    def restore_selected(self, request, queryset):
        self._run(
            request,
            queryset,
            lambda a: restore_rejected(a.pk, performed_by=request.user),
            "restored",
        )


@admin.register(AuditSession)
class AuditSessionAdmin(ModelAdmin):
    list_display = [
        "department",
        "started_by",
        "display_status",
        "display_scanned",
        "started_at",
        "completed_at",
    ]
    list_filter = [
        ("status", ChoicesDropdownFilter),
        ("department", RelatedDropdownFilter),
    ]
    search_fields = ["department__name", "department__site__name"]
    readonly_fields = [
        "department",
        "started_by",
        "status",
        "scanned_item_ids",
        "unexpected_items",
        "expected_item_ids",
        "started_at",
        "updated_at",
        "completed_at",
    ]

    def has_add_permission(self, request):
        return False

    @display(
        description="Status",
        label={
            "in_progress": "warning",
            "paused": "default",
            "completed": "success",
        },
    )
    def display_status(self, obj):
        return obj.status

    @display(description="Scanned")
    def display_scanned(self, obj):
        return len(obj.scanned_item_ids)


@admin.register(CustodyEvent)
class CustodyEventAdmin(ModelAdmin):
    list_display = [
        "equipment",
        "display_action",
        "actor",
        "performed_by",
        "from_status",
        "to_status",
        "timestamp",
    ]
    list_filter = [
        ("action", ChoicesDropdownFilter),
        ("actor", ChoicesDropdownFilter),
    ]
    search_fields = ["equipment__asset_tag", "notes"]
    date_hierarchy = "timestamp"
    readonly_fields = [
        "equipment",
        "assignment",
        "audit_session",
        "performed_by",
        "action",
        "actor",
        "from_status",
        "to_status",
        "notes",
        "timestamp",
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @display(
        description="Action",
        label={
            "transfer_created": "info",
            "approved": "default",
            "transfer_approved": "success",
            "rejected": "danger",
            "reverted": "warning",
            "restored": "warning",
            "status_changed": "default",
            "audit_confirmed": "success",
            "audit_relocated": "info",
            "audit_unexpected": "warning",
        },
    )
    def display_action(self, obj):
        return obj.action
