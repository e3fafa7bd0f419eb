from django.core.management.base import BaseCommand

from opd.services import clock, rooms, visits


class Command(BaseCommand):
    help = "Close unfinished visits from previous days (safe to run from cron, concurrently)."

    def handle(self, *args, **options):
        count = visits.auto_complete_stale()
        if count:
            rooms.invalidate_stats()
        self.stdout.write(self.style.SUCCESS(f"Auto-completed {count} visit(s) before {clock.today():%Y-%m-%d}"))
