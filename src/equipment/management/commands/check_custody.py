"""Report custody records that break the transfer invariants."""

from django.core.management.base import BaseCommand, CommandError

from equipment.services.integrity import find_inconsistencies


class Command(BaseCommand):
    help = (
        "Check equipment and transfer records for inconsistent custody "
        "state. Exits non-zero when problems are found."
    )

    def handle(self, *args, **options):
        problems = find_inconsistencies()
        if not problems:
            self.stdout.write(
                self.style.SUCCESS("Custody records are consistent.")
            )
            return
        for problem in problems:
            self.stdout.write(f"  - {problem}")
        raise CommandError(f"{len(problems)} custody inconsistencies found.")
