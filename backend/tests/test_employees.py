"""Tests for the employee directory repository queries and API."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from intranet.main import app
from intranet.repositories.employee_repository import EmployeeRepository
from intranet.repositories.hospital_repository import HospitalRepository
from intranet.services.permission_service import derive_permissions
from tests.conftest import DEFAULT_HOSPITAL_ID, auth_headers, make_employee


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


@pytest.fixture
def other_hospital(db_session):
    return HospitalRepository(db_session).create(name="Other Clinic")


@pytest.fixture
def staff(db_session, other_hospital):
    """Two employees here, one resigned, one in another hospital."""
    return {
        "nurse": make_employee(db_session, "Nurse Joy"),
        "doctor": make_employee(db_session, "Dr House", position="Diagnostician"),
        "resigned": make_employee(db_session, "Old Timer", status="resigned"),
        "outsider": make_employee(db_session, "Elsewhere", hospital_id=other_hospital.id),
    }


class TestEmployeeDirectoryRepository:
    def test_scoped_to_own_hospital(self, db_session, staff):
        repo = EmployeeRepository(db_session)
        perms = derive_permissions(staff["nurse"])
        names = [e.name for e in repo.get_directory(perms)]
        assert names == ["Dr House", "Nurse Joy", "Old Timer"]
        assert repo.count_directory(perms) == 3

    def test_filters(self, db_session, staff):
        repo = EmployeeRepository(db_session)
        perms = derive_permissions(staff["nurse"])
        assert [e.name for e in repo.get_directory(perms, status="active")] == [
            "Dr House",
            "Nurse Joy",
        ]
        assert [e.name for e in repo.get_directory(perms, search="HOUSE")] == ["Dr House"]
        assert repo.count_directory(perms, search="nobody") == 0

    def test_hospital_filter_cannot_escape_tenant(self, db_session, staff, other_hospital):
        repo = EmployeeRepository(db_session)
        admin = make_employee(db_session, "Admin", role="admin")
        perms = derive_permissions(admin)
        assert repo.get_directory(perms, hospital_id=other_hospital.id) == []

    def test_super_admin_picks_hospital(self, db_session, staff, other_hospital):
        repo = EmployeeRepository(db_session)
        root = make_employee(db_session, "Root", role="super_admin")
        perms = derive_permissions(root)
        assert repo.count_directory(perms) == 5
        assert [e.name for e in repo.get_directory(perms, hospital_id=other_hospital.id)] == [
            "Elsewhere"
        ]


class TestEmployeeAPI:
    def test_requires_auth(self, client):
        assert client.get("/v1/employees/").status_code == 401

    def test_list(self, client, staff):
        response = client.get("/v1/employees/", headers=auth_headers(staff["nurse"].email))
        assert response.status_code == 200
        assert response.headers["X-Total-Count"] == "3"
        data = response.json()
        assert {e["hospital_id"] for e in data} == {str(DEFAULT_HOSPITAL_ID)}

    def test_list_pagination_and_status(self, client, staff):
        response = client.get(
            "/v1/employees/?status=active&limit=1",
            headers=auth_headers(staff["nurse"].email),
        )
        assert response.headers["X-Total-Count"] == "2"
        assert [e["name"] for e in response.json()] == ["Dr House"]

    def test_list_rejects_unknown_status(self, client, staff):
        response = client.get(
            "/v1/employees/?status=retired", headers=auth_headers(staff["nurse"].email)
        )
        assert response.status_code == 422

    def test_admin_cannot_list_other_hospital(self, client, db_session, staff, other_hospital):
        admin = make_employee(db_session, "Admin", role="admin")
        response = client.get(
            f"/v1/employees/?hospital_id={other_hospital.id}", headers=auth_headers(admin.email)
        )
        assert response.json() == []

    def test_get_employee(self, client, staff):
        doctor = staff["doctor"]
        response = client.get(
            f"/v1/employees/{doctor.id}", headers=auth_headers(staff["nurse"].email)
        )
        assert response.status_code == 200
        assert response.json()["position"] == "Diagnostician"

    def test_get_employee_of_other_hospital_is_hidden(self, client, staff):
        outsider = staff["outsider"]
        response = client.get(
            f"/v1/employees/{outsider.id}", headers=auth_headers(staff["nurse"].email)
        )
        assert response.status_code == 404

    def test_get_unknown_employee(self, client, staff):
        response = client.get(
            f"/v1/employees/{uuid4()}", headers=auth_headers(staff["nurse"].email)
        )
        assert response.status_code == 404
