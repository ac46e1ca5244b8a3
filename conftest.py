# backend/conftest.py
from __future__ import annotations

import itertools
from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.utils import timezone
from rest_framework.test import APIClient

from hms_core.accounts.models import UserProfile
from hms_core.common.idempotency import clear_memory_store
from hms_core.patients.models import Patient
from hms_core.prescriptions.models import Medication

_seq = itertools.count(1)


@pytest.fixture(autouse=True)
def _reset_idempotency_store():
    clear_memory_store()
    yield
    clear_memory_store()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def make_user(db):
    """
    Factory: make_user("DOCTOR") -> auth user with profile + role group.
    PATIENT users also get their linked Patient row.
    """
    User = get_user_model()

    def _make(role: str, *, username: str | None = None, email: str | None = None, **profile_fields):
        n = next(_seq)
        username = username or f"{role.lower()}{n}"
        user = User.objects.create_user(
            username=username,
            email=email if email is not None else f"{username}@example.com",
            password="S3cure!pass-word",
            first_name=role.title(),
            last_name=str(n),
        )
        UserProfile.objects.create(user=user, role=role, **profile_fields)
        group, _ = Group.objects.get_or_create(name=role)
        user.groups.add(group)

        if role == "PATIENT":
            Patient.objects.create(
                user=user,
                patient_code=f"PT{n:06d}",
                full_name=f"Patient {n}",
                email=user.email,
            )
        return user

    return _make


@pytest.fixture
def client_for(api_client):
    def _client(user):
        api_client.force_authenticate(user=user)
        return api_client

    return _client


@pytest.fixture
def super_admin(make_user):
    return make_user("SUPER_ADMIN")


@pytest.fixture
def hospital_admin(make_user):
    return make_user("HOSPITAL_ADMIN")


@pytest.fixture
def doctor(make_user):
    return make_user("DOCTOR")


@pytest.fixture
def nurse(make_user):
    return make_user("NURSE")


@pytest.fixture
def pharmacist(make_user):
    return make_user("PHARMACIST")


@pytest.fixture
def lab_tech(make_user):
    return make_user("LAB_TECHNICIAN")


@pytest.fixture
def billing_staff(make_user):
    return make_user("BILLING_STAFF")


@pytest.fixture
def receptionist(make_user):
    return make_user("RECEPTIONIST")


@pytest.fixture
def patient_user(make_user):
    return make_user("PATIENT")


@pytest.fixture
def patient(patient_user):
    return patient_user.patient


@pytest.fixture
def other_patient(make_user):
    return make_user("PATIENT").patient


@pytest.fixture
def medication(db):
    return Medication.objects.create(
        code="MED-AMOX",
        name="Amoxicillin",
        generic_name="amoxicillin",
        category="antibiotic",
        strength="500mg",
        selling_price=Decimal("15000.00"),
        stock_quantity=100,
        reorder_level=10,
    )


@pytest.fixture
def tomorrow_at():
    def _at(hour: int, minute: int = 0):
        base = timezone.localtime() + timedelta(days=1)
        return base.replace(hour=hour, minute=minute, second=0, microsecond=0)

    return _at
