from __future__ import annotations

from ..extensions import db
from pharmacy.time_utils import to_utc_z, to_iso_date


class Customer(db.Model):
    """
    Customer master data, including the health information a pharmacist
    checks before dispensing.

    Sales do not hold a foreign key to this table: they carry a snapshot of
    the customer's id, name and phone taken at sale time.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    phone = db.Column(db.String(32), nullable=False, index=True)

    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(120), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)
    country = db.Column(db.String(120), nullable=True)

    allergies = db.Column(db.JSON, nullable=False, default=list)
    conditions = db.Column(db.JSON, nullable=False, default=list)
    medications = db.Column(db.JSON, nullable=False, default=list)

    date_of_birth = db.Column(db.Date, nullable=True)
    gender = db.Column(db.String(16), nullable=False, default="other")  # male, female, other

    insurance_provider = db.Column(db.String(255), nullable=True)
    insurance_policy_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": {
                "street": self.street,
                "city": self.city,
                "state": self.state,
                "zip_code": self.zip_code,
                "country": self.country,
            },
            "health_info": {
                "allergies": list(self.allergies or []),
                "conditions": list(self.conditions or []),
                "medications": list(self.medications or []),
            },
            "date_of_birth": to_iso_date(self.date_of_birth),
            "gender": self.gender,
            "insurance_info": {
                "provider": self.insurance_provider,
                "policy_number": self.insurance_policy_number,
            },
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
