from django.urls import path

from . import views

app_name = "equipment"

urlpatterns = [
    # Custody transfers
    path("transfers/", views.transfer_create, name="transfer_create"),
    path(
        "transfers/pending/",
        views.transfer_pending,
        name="transfer_pending",
    ),
    path(
        "transfers/<int:pk>/",
        views.transfer_detail,
        name="transfer_detail",
    ),
    path(
        "transfers/<int:pk>/approve/",
        views.transfer_approve,
        name="transfer_approve",
    ),
    path(
        "transfers/<int:pk>/reject/",
        views.transfer_reject,
        name="transfer_reject",
    ),
    path(
        "transfers/<int:pk>/revert/",
        views.transfer_revert,
        name="transfer_revert",
    ),
    path(
        "transfers/<int:pk>/restore/",
        views.transfer_restore,
        name="transfer_restore",
    ),
    # Equipment
    path(
        "equipment/<int:pk>/status/",
        views.equipment_status,
        name="equipment_status",
    ),
    path(
        "equipment/<int:pk>/transition/",
        views.equipment_transition,
        name="equipment_transition",
    ),
    # Audits
    path("audits/", views.audit_start, name="audit_start"),
    path("audits/<int:pk>/scan/", views.audit_scan, name="audit_scan"),
    path("audits/<int:pk>/pause/", views.audit_pause, name="audit_pause"),
    path(
        "audits/<int:pk>/complete/",
        views.audit_complete,
        name="audit_complete",
    ),
    path(
        "audits/<int:pk>/cancel/",
        views.audit_cancel,
        name="audit_cancel",
    ),
    path(
        "audits/<int:pk>/reconciliation/",
        views.audit_reconciliation,
        name="audit_reconciliation",
    ),
]
