from django.contrib.auth.hashers import make_password
from django.core.management.base import BaseCommand

from opd.models import Room, User

ROOMS = [
    ("201", "General OPD"),
    ("206", "Psychiatry OPD"),
    ("211", "Child guidance clinic"),
    ("215", "De-addiction clinic"),
]

DOCTORS = [
    ("dr_faculty", "faculty", "Asha", "Rao"),
    ("dr_resident1", "resident", "Vikram", "Singh"),
    ("dr_resident2", "resident", "Neha", "Gupta"),
    ("opd_admin", "admin", "OPD", "Admin"),
]


class Command(BaseCommand):
    help = "Ensure demo rooms and staff exist with password=123456 (idempotent)."

    def handle(self, *args, **opts):
        for number, description in ROOMS:
            room, created = Room.objects.get_or_create(
                room_number=number, is_active=True, defaults={"description": description},
            )
            self.stdout.write(self.style.SUCCESS(f"{'created' if created else 'ok'}: room {room.room_number}"))
        for username, role, first_name, last_name in DOCTORS:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={
                    "role": role, "first_name": first_name, "last_name": last_name,
                    "password": make_password("123456"), "is_active": True,
                },
            )
            if not created:
                u.role = role
                u.is_active = True
                u.save(update_fields=["role", "is_active"])
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        self.stdout.write(self.style.SUCCESS("Demo rooms and staff ensured."))
