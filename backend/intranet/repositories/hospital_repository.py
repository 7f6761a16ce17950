"""Repository for Hospital lookups."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from intranet.models.hospital import Hospital


class HospitalRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(self, name: str, type: str = "hospital") -> Hospital:
        hospital = Hospital(name=name, type=type)
        self.db.add(hospital)
        self.db.commit()
        self.db.refresh(hospital)
        return hospital

    def get_by_id(self, hospital_id: UUID) -> Hospital | None:
        return self.db.query(Hospital).filter(Hospital.id == hospital_id).first()

    def get_first(self) -> Hospital | None:
        """Return the earliest created hospital, used for auto-provisioning."""
        return self.db.query(Hospital).order_by(Hospital.created_at.asc()).first()
