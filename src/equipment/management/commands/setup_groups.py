"""Management command to create the custody permission groups."""

from django.contrib.auth.models import Group, Permission
from django.core.management.base import BaseCommand

# group name -> permission codenames in the equipment app
GROUP_PERMISSIONS = {
    "IT Admin": [
        "view_equipment",
        "add_equipment",
        "change_equipment",
        "view_assignment",
        "add_assignment",
        "change_assignment",
        "view_auditsession",
        "view_custodyevent",
        "view_site",
        "add_site",
        "change_site",
        "view_department",
        "add_department",
        "change_department",
        "view_category",
        "add_category",
        "change_category",
        "view_equipmentmodel",
        "add_equipmentmodel",
        "change_equipmentmodel",
        "can_validate_as_it",
        "can_run_audits",
    ],
    "Auditor": [
        "view_equipment",
        "view_auditsession",
        "view_site",
        "view_department",
        "can_run_audits",
    ],
    "Employee": [
        "view_equipment",
        "view_assignment",
    ],
}


class Command(BaseCommand):
    help = "Create the IT Admin, Auditor and Employee permission groups"

    def handle(self, *args, **options):
        for name, codenames in GROUP_PERMISSIONS.items():
            group, _ = Group.objects.get_or_create(name=name)
            perms = Permission.objects.filter(
                content_type__app_label="equipment", codename__in=codenames
            )
            missing = set(codenames) - set(
                perms.values_list("codename", flat=True)
            )
            if missing:
                self.stderr.write(
                    self.style.WARNING(
                        f"Missing permissions for '{name}': "
                        f"{', '.join(sorted(missing))}. Run migrate first."
                    )
                )
            group.permissions.set(perms)
            self.stdout.write(
                self.style.SUCCESS(f"Created/updated '{name}' group")
            )
