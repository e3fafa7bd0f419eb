from datetime import date, datetime, timedelta

import pytest
from django.core.cache import cache

from opd.models import Patient, Room, User
from opd.services import clock

TODAY = date(2024, 3, 14)


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def today():
    """Freeze the clinic clock at noon IST on a fixed day."""
    with clock.frozen(TODAY):
        yield TODAY


@pytest.fixture
def at():
    """Run a block at another moment: ``with at(some_date): ...``."""
    return clock.frozen


@pytest.fixture
def room_factory(db):
    def make(number, description=''):
        return Room.objects.create(room_number=number, description=description)
    return make


@pytest.fixture
def doctor_factory(db):
    counter = {'n': 0}

    def make(first_name='Doc', role=User.ROLE_RESIDENT, room=None, assigned_at=None):
        counter['n'] += 1
        doctor = User.objects.create_user(
            username=f'doctor{counter["n"]}', password='P@ssw0rd1', role=role, first_name=first_name,
        )
        if room is not None:
            doctor.current_room = room
            doctor.room_assignment_time = assigned_at or clock.now()
            doctor.save(update_fields=['current_room', 'room_assignment_time'])
        return doctor
    return make


@pytest.fixture
def patient_factory(db):
    def make(name='Ravi Kumar', **fields):
        return Patient.objects.create(name=name, sex=fields.pop('sex', 'M'), age=fields.pop('age', 40), **fields)
    return make


@pytest.fixture
def last_week(today):
    return today - timedelta(days=7)


def ist(day, hour, minute=0):
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=clock.zone())
