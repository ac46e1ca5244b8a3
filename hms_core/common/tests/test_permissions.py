# backend/hms_core/common/tests/test_permissions.py
from io import StringIO

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management import call_command
from rest_framework.exceptions import PermissionDenied

from hms_core.common.permissions import (
    ALL_ROLES,
    PRESCRIPTION_DISPENSE,
    can_manage_role,
    ensure_own_patient,
    has_permission,
    is_patient_only,
    user_roles,
)

pytestmark = pytest.mark.django_db


def test_user_without_profile_or_group_has_no_roles():
    user = get_user_model().objects.create_user(username="ghost", password="x")
    assert user_roles(user) == set()
    assert not has_permission(user, PRESCRIPTION_DISPENSE)


def test_superuser_is_super_admin():
    user = get_user_model().objects.create_superuser(username="root", password="x", email="root@example.com")
    assert user_roles(user) == {"SUPER_ADMIN"}


def test_unknown_group_names_are_ignored(pharmacist):
    pharmacist.groups.add(Group.objects.create(name="Bowling Club"))
    assert user_roles(pharmacist) == {"PHARMACIST"}
    assert has_permission(pharmacist, PRESCRIPTION_DISPENSE)


@pytest.mark.parametrize(
    "actor, target, allowed",
    [
        ({"SUPER_ADMIN"}, "HOSPITAL_ADMIN", True),
        ({"SUPER_ADMIN"}, "SUPER_ADMIN", False),
        ({"HOSPITAL_ADMIN"}, "HOSPITAL_ADMIN", False),
        ({"HOSPITAL_ADMIN"}, "DOCTOR", True),
        ({"DOCTOR"}, "NURSE", True),
        ({"NURSE"}, "PHARMACIST", False),
        ({"RECEPTIONIST", "NURSE"}, "BILLING_STAFF", True),
        ({"DOCTOR"}, "JANITOR", False),
    ],
)
def test_can_manage_role(actor, target, allowed):
    assert can_manage_role(actor, target) is allowed


def test_ensure_own_patient(patient_user, patient, other_patient, doctor):
    assert is_patient_only(patient_user)
    ensure_own_patient(patient_user, patient)
    with pytest.raises(PermissionDenied):
        ensure_own_patient(patient_user, other_patient)

    # staff pass through
    assert not is_patient_only(doctor)
    ensure_own_patient(doctor, other_patient)


def test_ensure_roles_command_is_idempotent():
    call_command("ensure_roles", stdout=StringIO())
    call_command("ensure_roles", stdout=StringIO())
    assert set(Group.objects.values_list("name", flat=True)) == set(ALL_ROLES)


def test_ensure_roles_syncs_groups_from_profiles(doctor, nurse):
    # drift: doctor lost the group, nurse gained an extra one
    doctor.groups.clear()
    nurse.groups.add(Group.objects.get_or_create(name="PHARMACIST")[0])

    out = StringIO()
    call_command("ensure_roles", "--sync-profiles", stdout=out)

    assert "Users fixed: 2" in out.getvalue()
    assert list(doctor.groups.values_list("name", flat=True)) == ["DOCTOR"]
    assert list(nurse.groups.values_list("name", flat=True)) == ["NURSE"]
