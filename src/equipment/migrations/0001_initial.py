import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


def _attribution_matches(actor):
    return models.CheckConstraint(
        condition=(
            models.Q(
                **{
                    f"{actor}_validated": True,
                    f"{actor}_validated_at__isnull": False,
                }
            )
            | models.Q(
                **{
                    f"{actor}_validated": False,
                    f"{actor}_validated_at__isnull": True,
                }
            )
        ),
        name=f"assignment_{actor}_attribution_matches",
    )


def _validated_by(actor):
    return (
        f"{actor}_validated_by",
        models.ForeignKey(
            blank=True,
            null=True,
            on_delete=django.db.models.deletion.SET_NULL,
            related_name="+",
            to=settings.AUTH_USER_MODEL,
        ),
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Site",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("name", models.CharField(max_length=100, unique=True)),
                ("country", models.CharField(blank=True, max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Category",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("name", models.CharField(max_length=100, unique=True)),
                (
                    "icon",
                    models.CharField(
                        blank=True, help_text="Icon class name", max_length=50
                    ),
                ),
                ("description", models.TextField(blank=True)),
            ],
            options={
                "verbose_name_plural": "categories",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Department",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("name", models.CharField(max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "site",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="departments",
                        to="equipment.site",
                    ),
                ),
            ],
            options={
                "ordering": ["site__name", "name"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("site", "name"),
                        name="unique_department_per_site",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="EquipmentModel",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("name", models.CharField(max_length=200)),
                ("brand", models.CharField(blank=True, max_length=100)),
                (
                    "model_number",
                    models.CharField(blank=True, max_length=100),
                ),
                ("specifications", models.TextField(blank=True)),
                (
                    "category",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="equipment_models",
                        to="equipment.category",
                    ),
                ),
            ],
            options={
                "ordering": ["brand", "name"],
            },
        ),
        migrations.CreateModel(
            name="Equipment",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "asset_tag",
                    models.CharField(
                        help_text=(
                            "Serial number or label scanned during audits"
                        ),
                        max_length=100,
                        unique=True,
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        blank=True,
                        help_text="Directory / host name",
                        max_length=200,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("available", "Available"),
                            ("pending_validation", "Pending Validation"),
                            ("assigned", "Assigned"),
                            ("in_repair", "In Repair"),
                            ("in_storage", "In Storage"),
                            ("decommissioned", "Decommissioned"),
                        ],
                        default="available",
                        max_length=20,
                    ),
                ),
                ("purchase_date", models.DateField(blank=True, null=True)),
                (
                    "warranty_end_date",
                    models.DateField(blank=True, null=True),
                ),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "equipment_model",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="equipment",
                        to="equipment.equipmentmodel",
                    ),
                ),
                (
                    "site",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="equipment",
                        to="equipment.site",
                    ),
                ),
                (
                    "department",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="equipment",
                        to="equipment.department",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "equipment",
                "ordering": ["asset_tag"],
                "permissions": [
                    (
                        "can_validate_as_it",
                        "Can validate custody transfers as IT admin",
                    ),
                    ("can_run_audits", "Can run equipment audit sessions"),
                ],
                "indexes": [
                    models.Index(
                        fields=["status"], name="idx_equipment_status"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Assignment",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "action",
                    models.CharField(
                        choices=[("assign", "Assign"), ("return", "Return")],
                        max_length=10,
                    ),
                ),
                (
                    "signature",
                    models.CharField(
                        blank=True,
                        help_text=(
                            "Signature reference or validation method marker"
                        ),
                        max_length=255,
                    ),
                ),
                (
                    "condition",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("excellent", "Excellent"),
                            ("good", "Good"),
                            ("fair", "Fair"),
                            ("poor", "Poor"),
                        ],
                        max_length=20,
                    ),
                ),
                ("return_notes", models.TextField(blank=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                        ],
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("rejection_reason", models.TextField(blank=True)),
                ("it_validated", models.BooleanField(default=False)),
                _validated_by("it"),
                (
                    "it_validated_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                ("manager_validated", models.BooleanField(default=False)),
                _validated_by("manager"),
                (
                    "manager_validated_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                ("user_validated", models.BooleanField(default=False)),
                _validated_by("user"),
                (
                    "user_validated_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "created_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "equipment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assignments",
                        to="equipment.equipment",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text=(
                            "Employee receiving or handing back the equipment"
                        ),
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="custody_assignments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "manager",
                    models.ForeignKey(
                        help_text="The employee's manager",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="managed_assignments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "requested_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="requested_assignments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status"], name="idx_assignment_status"
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=(
                            models.Q(
                                status="approved",
                                it_validated=True,
                                manager_validated=True,
                                user_validated=True,
                            )
                            | (
                                ~models.Q(status="approved")
                                & ~models.Q(
                                    it_validated=True,
                                    manager_validated=True,
                                    user_validated=True,
                                )
                            )
                        ),
                        name="assignment_approved_iff_fully_validated",
                    ),
                    models.CheckConstraint(
                        condition=(
                            (
                                models.Q(status="rejected")
                                & ~models.Q(rejection_reason="")
                            )
                            | (
                                ~models.Q(status="rejected")
                                & models.Q(rejection_reason="")
                            )
                        ),
                        name="assignment_rejection_reason_iff_rejected",
                    ),
                    _attribution_matches("it"),
                    _attribution_matches("manager"),
                    _attribution_matches("user"),
                ],
            },
        ),
        migrations.AddField(
            model_name="equipment",
            name="pending_assignment",
            field=models.OneToOneField(
                blank=True,
                help_text="Transfer currently awaiting validation for this item",
                null=True,
                on_delete=django.db.models.deletion.PROTECT,
                related_name="gated_equipment",
                to="equipment.assignment",
            ),
        ),
        migrations.AddConstraint(
            model_name="equipment",
            constraint=models.CheckConstraint(
                condition=(
                    models.Q(
                        status="pending_validation",
                        pending_assignment__isnull=False,
                    )
                    | (
                        ~models.Q(status="pending_validation")
                        & models.Q(pending_assignment__isnull=True)
                    )
                ),
                name="equipment_pending_assignment_matches_status",
            ),
        ),
        migrations.CreateModel(
            name="AuditSession",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("in_progress", "In Progress"),
                            ("paused", "Paused"),
                            ("completed", "Completed"),
                        ],
                        default="in_progress",
                        max_length=20,
                    ),
                ),
                (
                    "scanned_item_ids",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text=(
                            "Equipment ids confirmed present, in scan order"
                        ),
                    ),
                ),
                (
                    "unexpected_items",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text=(
                            "Items found here that belong elsewhere: "
                            "assetTag, modelName, originalLocation"
                        ),
                    ),
                ),
                (
                    "expected_item_ids",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text=(
                            "Expected equipment ids frozen when the audit "
                            "completed"
                        ),
                    ),
                ),
                (
                    "started_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "updated_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "completed_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "department",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="audit_sessions",
                        to="equipment.department",
                    ),
                ),
                (
                    "started_by",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_sessions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-started_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            status__in=["in_progress", "paused"]
                        ),
                        fields=("department",),
                        name="unique_open_audit_per_department",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="CustodyEvent",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("transfer_created", "Transfer Created"),
                            ("approved", "Actor Approved"),
                            ("transfer_approved", "Transfer Approved"),
                            ("rejected", "Transfer Rejected"),
                            ("reverted", "Approval Reverted"),
                            ("restored", "Rejection Restored"),
                            ("status_changed", "Status Changed"),
                            ("audit_confirmed", "Audit Confirmed"),
                            ("audit_relocated", "Audit Relocated"),
                            ("audit_unexpected", "Audit Unexpected"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "actor",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("it", "IT Admin"),
                            ("manager", "Manager"),
                            ("user", "User"),
                        ],
                        max_length=10,
                    ),
                ),
                ("from_status", models.CharField(blank=True, max_length=20)),
                ("to_status", models.CharField(blank=True, max_length=20)),
                ("notes", models.TextField(blank=True)),
                (
                    "timestamp",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                (
                    "equipment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="custody_events",
                        to="equipment.equipment",
                    ),
                ),
                (
                    "assignment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="events",
                        to="equipment.assignment",
                    ),
                ),
                (
                    "audit_session",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="events",
                        to="equipment.auditsession",
                    ),
                ),
                (
                    "performed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="custody_events",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-timestamp", "-pk"],
                "indexes": [
                    models.Index(
                        fields=["timestamp"],
                        name="idx_custody_event_timestamp",
                    ),
                    models.Index(
                        fields=["action"], name="idx_custody_event_action"
                    ),
                ],
            },
        ),
    ]
