"""Models for IT equipment custody and audit tracking."""

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

VALIDATION_ACTORS = ("it", "manager", "user")

ACTOR_CHOICES = [
    ("it", "IT Admin"),
    ("manager", "Manager"),
    ("user", "User"),
]


class Site(models.Model):
    """Physical site (office, campus) where equipment is kept."""

    name = models.CharField(max_length=100, unique=True)
    country = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Department(models.Model):
    """Department within a site. Audits are run per department."""

    name = models.CharField(max_length=100)
    site = models.ForeignKey(
        Site,
        on_delete=models.PROTECT,
        related_name="departments",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["site__name", "name"]
        constraints = [
            models.UniqueConstraint(
                fields=["site", "name"],
                name="unique_department_per_site",
            ),
        ]

    def __str__(self):
        return f"{self.site.name} / {self.name}"


class Category(models.Model):
    """Equipment type classification (laptop, monitor, phone...)."""

    name = models.CharField(max_length=100, unique=True)
    icon = models.CharField(
        max_length=50, blank=True, help_text="Icon class name"
    )
    description = models.TextField(blank=True)

    class Meta:
        verbose_name_plural = "categories"
        ordering = ["name"]

    def __str__(self):
        return self.name


class EquipmentModel(models.Model):
    """Manufacturer model shared by many equipment items."""

    name = models.CharField(max_length=200)
    brand = models.CharField(max_length=100, blank=True)
    model_number = models.CharField(max_length=100, blank=True)
    category = models.ForeignKey(
        Category,
        on_delete=models.PROTECT,
        related_name="equipment_models",
        null=True,
        blank=True,
    )
    specifications = models.TextField(blank=True)

    class Meta:
        ordering = ["brand", "name"]

    def __str__(self):
        if self.brand:
            return f"{self.brand} {self.name}"
        return self.name


class Equipment(models.Model):
    """Individual equipment item tracked by asset tag."""

    STATUS_CHOICES = [
        ("available", "Available"),
        ("pending_validation", "Pending Validation"),
        ("assigned", "Assigned"),
        ("in_repair", "In Repair"),
        ("in_storage", "In Storage"),
        ("decommissioned", "Decommissioned"),
    ]

    # Statuses only the custody transfer workflow may set.
    TRANSFER_STATUSES = ("pending_validation", "assigned")

    # Manual (administrative) transitions: from_status -> [to_statuses]
    VALID_TRANSITIONS = {
        "available": ["in_repair", "in_storage", "decommissioned"],
        "in_repair": ["available", "in_storage", "decommissioned"],
        "in_storage": ["available", "in_repair", "decommissioned"],
        "assigned": [],
        "pending_validation": [],
        "decommissioned": [],
    }

    asset_tag = models.CharField(
        max_length=100,
        unique=True,
        help_text="Serial number or label scanned during audits",
    )
    name = models.CharField(
        max_length=200, blank=True, help_text="Directory / host name"
    )
    equipment_model = models.ForeignKey(
        EquipmentModel,
        on_delete=models.PROTECT,
        related_name="equipment",
        null=True,
        blank=True,
    )
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="available"
    )
    pending_assignment = models.OneToOneField(
        "Assignment",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="gated_equipment",
        help_text="Transfer currently awaiting validation for this item",
    )
    site = models.ForeignKey(
        Site,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="equipment",
    )
    department = models.ForeignKey(
        Department,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="equipment",
    )
    purchase_date = models.DateField(null=True, blank=True)
    warranty_end_date = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "equipment"
        ordering = ["asset_tag"]
        indexes = [
            models.Index(fields=["status"], name="idx_equipment_status"),
        ]
        constraints = [
            models.CheckConstraint(
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
        ]
        permissions = [
            (
                "can_validate_as_it",
                "Can validate custody transfers as IT admin",
            ),
            ("can_run_audits", "Can run equipment audit sessions"),
        ]

    def __str__(self):
        if self.equipment_model_id:
            return f"{self.equipment_model.name} ({self.asset_tag})"
        return self.asset_tag

    def can_transition_to(self, new_status):
        """Check if a manual status transition is valid."""
        return new_status in self.VALID_TRANSITIONS.get(self.status, [])

    @property
    def model_name(self):
        return (
            self.equipment_model.name if self.equipment_model_id else None
        )

    @property
    def location_display(self):
        """Return 'Site / Department', the site alone, or a placeholder."""
        if not self.site_id:
            return "Unknown location"
        if self.department_id and self.department.site_id == self.site_id:
            return f"{self.site.name} / {self.department.name}"
        return self.site.name


class Assignment(models.Model):
    """Custody transfer record (hand-out or hand-back) and its
    three-party validation ledger.

    The ledger is the ``<actor>_validated`` booleans together with the
    matching ``<actor>_validated_by`` / ``<actor>_validated_at``
    attribution. Attribution is only present while the boolean is true.
    """

    ACTION_CHOICES = [
        ("assign", "Assign"),
        ("return", "Return"),
    ]

    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("approved", "Approved"),
        ("rejected", "Rejected"),
    ]

    CONDITION_CHOICES = [
        ("excellent", "Excellent"),
        ("good", "Good"),
        ("fair", "Fair"),
        ("poor", "Poor"),
    ]

    # Approval order per action. Each actor's prerequisites are the
    # actors listed before it.
    APPROVAL_ORDER = {
        "assign": ("it", "manager", "user"),
        "return": ("it", "user", "manager"),
    }

    # Equipment status once every actor has validated.
    APPROVED_EQUIPMENT_STATUS = {
        "assign": "assigned",
        "return": "available",
    }

    action = models.CharField(max_length=10, choices=ACTION_CHOICES)
    equipment = models.ForeignKey(
        Equipment,
        on_delete=models.PROTECT,
        related_name="assignments",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="custody_assignments",
        help_text="Employee receiving or handing back the equipment",
    )
    manager = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="managed_assignments",
        help_text="The employee's manager",
    )
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="requested_assignments",
    )
    signature = models.CharField(
        max_length=255,
        blank=True,
        help_text="Signature reference or validation method marker",
    )
    condition = models.CharField(
        max_length=20, choices=CONDITION_CHOICES, blank=True
    )
    return_notes = models.TextField(blank=True)
    status = models.CharField(
        max_length=10, choices=STATUS_CHOICES, default="pending"
    )
    rejection_reason = models.TextField(blank=True)

    it_validated = models.BooleanField(default=False)
    it_validated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    it_validated_at = models.DateTimeField(null=True, blank=True)
    manager_validated = models.BooleanField(default=False)
    manager_validated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    manager_validated_at = models.DateTimeField(null=True, blank=True)
    user_validated = models.BooleanField(default=False)
    user_validated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    user_validated_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="idx_assignment_status"),
        ]
        constraints = [
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
        ] + [
            models.CheckConstraint(
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
            for actor in VALIDATION_ACTORS
        ]

    def __str__(self):
        return (
            f"{self.get_action_display()} {self.equipment.asset_tag} "
            f"to {self.user} ({self.get_status_display()})"
        )

    # --- Validation ledger helpers ---

    @property
    def validation(self):
        return {actor: self.is_validated(actor) for actor in VALIDATION_ACTORS}

    @property
    def validated_by(self):
        return {
            actor: getattr(self, f"{actor}_validated_by_id")
            for actor in VALIDATION_ACTORS
            if self.is_validated(actor)
        }

    @property
    def validated_at(self):
        return {
            actor: getattr(self, f"{actor}_validated_at")
            for actor in VALIDATION_ACTORS
            if self.is_validated(actor)
        }

    def is_validated(self, actor):
        return getattr(self, f"{actor}_validated")

    @property
    def is_fully_validated(self):
        return all(self.is_validated(actor) for actor in VALIDATION_ACTORS)

    @property
    def is_terminal(self):
        return self.status in ("approved", "rejected")

    def prerequisites_for(self, actor):
        """Actors that must have validated before ``actor`` may."""
        order = self.APPROVAL_ORDER[self.action]
        return order[: order.index(actor)]

    def prerequisites_met(self, actor):
        return all(self.is_validated(p) for p in self.prerequisites_for(actor))

    def can_approve(self, actor):
        """True if ``actor`` may validate now (order respected, not yet
        validated, assignment still pending)."""
        return (
            self.status == "pending"
            and not self.is_validated(actor)
            and self.prerequisites_met(actor)
        )

    @property
    def next_required_actor(self):
        """First actor in approval order who has not validated yet."""
        for actor in self.APPROVAL_ORDER[self.action]:
            if not self.is_validated(actor):
                return actor
        return None

    @property
    def approved_equipment_status(self):
        return self.APPROVED_EQUIPMENT_STATUS[self.action]

    def mark_validated(self, actor, by_user, when):
        setattr(self, f"{actor}_validated", True)
        setattr(self, f"{actor}_validated_by", by_user)
        setattr(self, f"{actor}_validated_at", when)

    def clear_validation(self, actor):
        setattr(self, f"{actor}_validated", False)
        setattr(self, f"{actor}_validated_by", None)
        setattr(self, f"{actor}_validated_at", None)

    def clear_all_validation(self):
        for actor in VALIDATION_ACTORS:
            self.clear_validation(actor)


class AuditSession(models.Model):
    """Physical audit pass of one department's expected equipment.

    Cancelled sessions are deleted rather than stored, so there is no
    cancelled status.
    """

    STATUS_CHOICES = [
        ("in_progress", "In Progress"),
        ("paused", "Paused"),
        ("completed", "Completed"),
    ]

    OPEN_STATUSES = ("in_progress", "paused")

    department = models.ForeignKey(
        Department,
        on_delete=models.PROTECT,
        related_name="audit_sessions",
    )
    started_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="audit_sessions",
    )
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default="in_progress"
    )
    scanned_item_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="Equipment ids confirmed present, in scan order",
    )
    unexpected_items = models.JSONField(
        default=list,
        blank=True,
        help_text=(
            "Items found here that belong elsewhere: "
            "assetTag, modelName, originalLocation"
        ),
    )
    expected_item_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="Expected equipment ids frozen when the audit completed",
    )
    started_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-started_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["department"],
                condition=models.Q(status__in=["in_progress", "paused"]),
                name="unique_open_audit_per_department",
            ),
        ]

    def __str__(self):
        return f"Audit of {self.department} ({self.get_status_display()})"

    @property
    def is_open(self):
        return self.status in self.OPEN_STATUSES

    def has_scanned(self, equipment_id):
        return equipment_id in self.scanned_item_ids

    def has_unexpected(self, asset_tag):
        return any(
            item.get("assetTag") == asset_tag for item in self.unexpected_items
        )

    def touch(self):
        self.updated_at = timezone.now()


class CustodyEvent(models.Model):
    """Immutable log of custody and audit mutations on equipment."""

    ACTION_CHOICES = [
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
    ]

    equipment = models.ForeignKey(
        Equipment, on_delete=models.CASCADE, related_name="custody_events"
    )
    assignment = models.ForeignKey(
        Assignment,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="events",
    )
    audit_session = models.ForeignKey(
        AuditSession,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="events",
    )
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="custody_events",
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    actor = models.CharField(max_length=10, choices=ACTOR_CHOICES, blank=True)
    from_status = models.CharField(max_length=20, blank=True)
    to_status = models.CharField(max_length=20, blank=True)
    notes = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-timestamp", "-pk"]
        indexes = [
            models.Index(
                fields=["timestamp"], name="idx_custody_event_timestamp"
            ),
            models.Index(fields=["action"], name="idx_custody_event_action"),
        ]

    def __str__(self):
        return (
            f"{self.equipment.asset_tag} - {self.get_action_display()} "
            f"by {self.performed_by}"
        )

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError(
                "Custody events are immutable and cannot be modified."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            "Custody events are immutable and cannot be deleted."
        )
