"""Tests for role-derived permissions and tenant filtering."""

from intranet.models.employee import Employee
from intranet.repositories.hospital_repository import HospitalRepository
from intranet.services.permission_service import apply_hospital_filter, derive_permissions
from tests.conftest import DEFAULT_HOSPITAL_ID, make_employee


class TestDerivePermissions:
    def test_no_employee(self):
        perms = derive_permissions(None)
        assert perms.employee is None
        assert perms.is_admin is False
        assert perms.is_manager is False
        assert perms.hospital_id is None

    def test_employee_role(self, db_session):
        emp = make_employee(db_session, "Plain Staff")
        perms = derive_permissions(emp)
        assert perms.is_admin is False
        assert perms.is_manager is False
        assert perms.is_super_admin is False
        assert perms.hospital_id == DEFAULT_HOSPITAL_ID

    def test_manager_role(self, db_session):
        emp = make_employee(db_session, "Ward Manager", role="manager")
        perms = derive_permissions(emp)
        assert perms.is_manager is True
        assert perms.is_admin is False

    def test_admin_role(self, db_session):
        emp = make_employee(db_session, "Sys Admin", role="admin")
        perms = derive_permissions(emp)
        assert perms.is_admin is True
        assert perms.is_manager is True
        assert perms.is_super_admin is False

    def test_super_admin_role(self, db_session):
        emp = make_employee(db_session, "Root", role="super_admin")
        perms = derive_permissions(emp)
        assert perms.is_admin is True
        assert perms.is_manager is True
        assert perms.is_super_admin is True


class TestApplyHospitalFilter:
    def test_restricts_non_admin_to_own_hospital(self, db_session):
        other = HospitalRepository(db_session).create(name="Other Clinic")
        viewer = make_employee(db_session, "Viewer")
        make_employee(db_session, "Outsider", hospital_id=other.id)

        query = apply_hospital_filter(
            db_session.query(Employee), Employee, derive_permissions(viewer)
        )
        names = {e.name for e in query.all()}
        assert names == {"Viewer"}

    def test_hospital_admin_stays_in_own_hospital(self, db_session):
        other = HospitalRepository(db_session).create(name="Other Clinic")
        admin = make_employee(db_session, "Admin", role="admin")
        make_employee(db_session, "Outsider", hospital_id=other.id)

        query = apply_hospital_filter(
            db_session.query(Employee), Employee, derive_permissions(admin)
        )
        assert [e.name for e in query.all()] == ["Admin"]

    def test_super_admin_sees_all_hospitals(self, db_session):
        other = HospitalRepository(db_session).create(name="Other Clinic")
        root = make_employee(db_session, "Root", role="super_admin")
        make_employee(db_session, "Outsider", hospital_id=other.id)

        query = apply_hospital_filter(
            db_session.query(Employee), Employee, derive_permissions(root)
        )
        assert query.count() == 2
