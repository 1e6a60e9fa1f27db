"""
Fleet tables targeted by the sync queue

Only the columns the queue moves are modelled here; the CRUD endpoints for
these entities live outside this service.
"""
from datetime import datetime
from ..extensions import db


class Vehicle(db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    company_id = db.Column(db.Integer, nullable=False, index=True)
    unit_number = db.Column(db.String(32), nullable=False)
    vin = db.Column(db.String(32))
    make = db.Column(db.String(64))
    model = db.Column(db.String(64))
    year = db.Column(db.Integer)
    license_plate = db.Column(db.String(16))
    status = db.Column(db.String(16), default='active')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'company_id': self.company_id,
            'unit_number': self.unit_number,
            'vin': self.vin,
            'make': self.make,
            'model': self.model,
            'year': self.year,
            'license_plate': self.license_plate,
            'status': self.status,
        }


class Driver(db.Model):
    __tablename__ = 'drivers'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    company_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    license_number = db.Column(db.String(32))
    license_state = db.Column(db.String(2))
    phone = db.Column(db.String(32))
    status = db.Column(db.String(16), default='active')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'company_id': self.company_id,
            'name': self.name,
            'license_number': self.license_number,
            'license_state': self.license_state,
            'phone': self.phone,
            'status': self.status,
        }
