"""
Toll transaction model
Transactions pulled from a provider, one row per provider transaction id
"""
from datetime import datetime

from ..extensions import db


def _iso(value):
    return value.isoformat() + 'Z' if value else None


class TollTransaction(db.Model):
    """A toll charge reported by the provider of one account"""
    __tablename__ = 'toll_transactions'
    __table_args__ = (
        db.UniqueConstraint('company_toll_account_id', 'transaction_id', name='uq_account_transaction'),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    company_toll_account_id = db.Column(
        db.Integer,
        db.ForeignKey('company_toll_accounts.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    transaction_id = db.Column(db.String(128), nullable=False)
    toll_facility_name = db.Column(db.String(255))
    toll_facility_id = db.Column(db.String(128))
    location_address = db.Column(db.String(255))
    location_coordinates = db.Column(db.String(64))  # "lat,lon"
    transaction_date = db.Column(db.DateTime, index=True)
    amount = db.Column(db.Numeric(10, 2, asdecimal=False), default=0)
    currency = db.Column(db.String(3), default='USD')
    vehicle_class = db.Column(db.String(32))
    entry_time = db.Column(db.DateTime)
    exit_time = db.Column(db.DateTime)
    transaction_status = db.Column(db.String(32), default='completed')
    provider_data = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    account = db.relationship('CompanyTollAccount', back_populates='transactions')

    @classmethod
    def from_transaction(cls, account_id: int, transaction) -> 'TollTransaction':
        """Row for an adapter Transaction"""
        location = transaction.location
        coordinates = None
        if location is not None and location.has_coordinates:
            coordinates = f'{location.latitude},{location.longitude}'

        return cls(
            company_toll_account_id=account_id,
            transaction_id=transaction.transaction_id,
            toll_facility_name=transaction.facility_name,
            toll_facility_id=transaction.facility_id,
            location_address=location.address if location else None,
            location_coordinates=coordinates,
            transaction_date=transaction.transaction_date,
            amount=transaction.amount,
            currency=transaction.currency,
            vehicle_class=transaction.vehicle_class,
            entry_time=transaction.entry_time,
            exit_time=transaction.exit_time,
            transaction_status=transaction.status,
            provider_data=transaction.to_dict(),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'company_toll_account_id': self.company_toll_account_id,
            'transaction_id': self.transaction_id,
            'toll_facility_name': self.toll_facility_name,
            'toll_facility_id': self.toll_facility_id,
            'location_address': self.location_address,
            'location_coordinates': self.location_coordinates,
            'transaction_date': _iso(self.transaction_date),
            'amount': self.amount,
            'currency': self.currency,
            'vehicle_class': self.vehicle_class,
            'entry_time': _iso(self.entry_time),
            'exit_time': _iso(self.exit_time),
            'transaction_status': self.transaction_status,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<TollTransaction {self.transaction_id} account={self.company_toll_account_id}>'
