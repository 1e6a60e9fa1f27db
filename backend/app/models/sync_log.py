"""
Toll sync log model (append-only audit trail)
"""
from datetime import datetime
from ..extensions import db


class TollSyncLog(db.Model):
    """One row per sync attempt against a toll account"""
    __tablename__ = 'toll_sync_logs'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    company_toll_account_id = db.Column(
        db.Integer,
        db.ForeignKey('company_toll_accounts.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    sync_type = db.Column(db.String(32), default='full_sync', nullable=False)
    sync_status = db.Column(db.String(16), nullable=False)  # completed, failed
    records_processed = db.Column(db.Integer, default=0)
    records_created = db.Column(db.Integer, default=0)
    records_updated = db.Column(db.Integer, default=0)
    error_message = db.Column(db.Text)
    sync_duration_ms = db.Column(db.Integer, default=0)
    completed_at = db.Column(db.DateTime, default=datetime.utcnow)

    account = db.relationship('CompanyTollAccount', back_populates='sync_logs')

    def to_dict(self):
        return {
            'id': self.id,
            'company_toll_account_id': self.company_toll_account_id,
            'sync_type': self.sync_type,
            'sync_status': self.sync_status,
            'records_processed': self.records_processed,
            'records_created': self.records_created,
            'records_updated': self.records_updated,
            'error_message': self.error_message,
            'sync_duration_ms': self.sync_duration_ms,
            'completed_at': self.completed_at.isoformat() + 'Z' if self.completed_at else None,
        }

    def __repr__(self):
        return f'<TollSyncLog account={self.company_toll_account_id} {self.sync_status}>'
