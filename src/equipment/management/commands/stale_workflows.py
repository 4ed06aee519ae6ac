"""List transfers and audits that have been left open too long."""

from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from equipment.models import Assignment, AuditSession


class Command(BaseCommand):
    help = (
        "List pending transfers and open audit sessions older than "
        "STALE_WORKFLOW_DAYS. Nothing is cancelled."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--days",
            type=int,
            default=None,
            help="Override STALE_WORKFLOW_DAYS",
        )

    def handle(self, *args, **options):
        days = options["days"]
        if days is None:
            days = settings.STALE_WORKFLOW_DAYS
        cutoff = timezone.now() - timedelta(days=days)

        transfers = (
            Assignment.objects.filter(status="pending", created_at__lt=cutoff)
            .select_related("equipment", "user")
            .order_by("created_at")
        )
        audits = (
            AuditSession.objects.filter(
                status__in=AuditSession.OPEN_STATUSES, updated_at__lt=cutoff
            )
            .select_related("department__site")
            .order_by("updated_at")
        )

        for a in transfers:
            self.stdout.write(
                f"Transfer #{a.pk} {a.get_action_display().lower()} "
                f"{a.equipment.asset_tag} for {a.user} pending since "
                f"{a.created_at:%Y-%m-%d}, waiting for "
                f"{a.next_required_actor}"
            )
        for s in audits:
            self.stdout.write(
                f"Audit #{s.pk} of {s.department} "
                f"{s.get_status_display().lower()} since "
                f"{s.updated_at:%Y-%m-%d}"
            )

        total = len(transfers) + len(audits)
        if total:
            self.stdout.write(
                self.style.WARNING(
                    f"{total} stale workflow(s) older than {days} days."
                )
            )
        else:
            self.stdout.write(self.style.SUCCESS("No stale workflows."))
