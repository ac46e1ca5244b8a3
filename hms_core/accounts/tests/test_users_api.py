# backend/hms_core/accounts/tests/test_users_api.py
import pytest

from hms_core.accounts.models import Department

pytestmark = pytest.mark.django_db

URL = "/api/v1/users/"


def _payload(username, role, **extra):
    return {
        "username": username,
        "email": f"{username}@example.com",
        "password": "S3cure!pass-word",
        "role": role,
        **extra,
    }


def test_admin_creates_staff_user(client_for, hospital_admin):
    r = client_for(hospital_admin).post(URL, _payload("dr.pham", "DOCTOR", specialization="Cardiology"), format="json")

    assert r.status_code == 201, r.data
    assert r.data["role"] == "DOCTOR"
    assert r.data["specialization"] == "Cardiology"
    assert r.data["status"] == "ACTIVE"


def test_department_head_cannot_create_admin(client_for, make_user):
    head = make_user("DEPARTMENT_HEAD")
    r = client_for(head).post(URL, _payload("boss", "HOSPITAL_ADMIN"), format="json")

    assert r.status_code == 403
    assert r.data["error"]["code"] == "permission_denied"


def test_doctor_cannot_manage_users(client_for, doctor):
    assert client_for(doctor).get(URL).status_code == 403


def test_list_filters_by_role(client_for, hospital_admin, doctor, nurse):
    r = client_for(hospital_admin).get(URL, {"role": "DOCTOR"})
    assert r.status_code == 200
    assert [u["username"] for u in r.data["results"]] == [doctor.username]

    r = client_for(hospital_admin).get(URL, {"role": "WIZARD"})
    assert r.status_code == 400


def test_delete_restore_roundtrip(client_for, hospital_admin, nurse):
    client = client_for(hospital_admin)

    r = client.delete(f"{URL}{nurse.id}/", {"reason": "contract ended"}, format="json")
    assert r.status_code == 200, r.data
    assert r.data["is_deleted"] is True

    # deleted users drop out of the default list
    listed = [u["id"] for u in client.get(URL).data["results"]]
    assert nurse.id not in listed
    assert [u["id"] for u in client.get(f"{URL}deleted/").data["results"]] == [nurse.id]

    r = client.post(f"{URL}{nurse.id}/restore/")
    assert r.status_code == 200
    assert r.data["username"] == nurse.username


def test_disable_and_assign_role(client_for, hospital_admin, receptionist):
    client = client_for(hospital_admin)

    r = client.post(f"{URL}{receptionist.id}/disable/", {"reason": "audit"}, format="json")
    assert r.status_code == 200
    assert r.data["is_active"] is False
    assert r.data["status"] == "INACTIVE"

    r = client.post(f"{URL}{receptionist.id}/assign-role/", {"role": "BILLING_STAFF"}, format="json")
    assert r.status_code == 200
    assert r.data["role"] == "BILLING_STAFF"


def test_unknown_user_is_404(client_for, hospital_admin):
    r = client_for(hospital_admin).get(f"{URL}999999/")
    assert r.status_code == 404
    assert r.data["error"]["code"] == "not_found"


def test_stats(client_for, hospital_admin, doctor):
    r = client_for(hospital_admin).get(f"{URL}stats/")
    assert r.status_code == 200
    assert r.data["by_role"]["DOCTOR"] == 1
    assert r.data["by_role"]["HOSPITAL_ADMIN"] == 1


def test_departments_crud(client_for, hospital_admin, doctor):
    client = client_for(hospital_admin)

    r = client.post(
        "/api/v1/departments/",
        {"code": "cardio", "name": "Cardiology", "head_id": doctor.id},
        format="json",
    )
    assert r.status_code == 201, r.data
    dept_id = r.data["id"]

    r = client.post("/api/v1/departments/", {"code": "cardio", "name": "Again"}, format="json")
    assert r.status_code == 400

    r = client.patch(f"/api/v1/departments/{dept_id}/", {"name": "Heart Center"}, format="json")
    assert r.status_code == 200
    assert Department.objects.get(id=dept_id).name == "Heart Center"


def test_only_admins_create_departments(client_for, make_user):
    head = make_user("DEPARTMENT_HEAD")
    r = client_for(head).post("/api/v1/departments/", {"code": "neuro", "name": "Neurology"}, format="json")
    assert r.status_code == 403
    assert r.data["error"]["code"] == "permission_denied"

    # heads can still read the list
    assert client_for(head).get("/api/v1/departments/").status_code == 200
