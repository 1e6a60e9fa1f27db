"""
Outbound sync queue model
"""
from datetime import datetime
from ..extensions import db


class SyncQueueItem(db.Model):
    """A locally originated mutation waiting to be applied to its target table

    status moves pending -> processed | failed and never back to pending.
    """
    __tablename__ = 'sync_queue'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    company_id = db.Column(db.Integer, nullable=False, index=True)
    table_name = db.Column(db.String(64), nullable=False)
    action = db.Column(db.String(16), nullable=False)  # create, update, delete
    payload = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(db.String(16), default='pending', nullable=False, index=True)  # pending, processed, failed
    error_message = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    processed_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'company_id': self.company_id,
            'table_name': self.table_name,
            'action': self.action,
            'payload': self.payload,
            'status': self.status,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat() + 'Z' if self.created_at else None,
            'processed_at': self.processed_at.isoformat() + 'Z' if self.processed_at else None,
        }

    def __repr__(self):
        return f'<SyncQueueItem {self.id} {self.action} {self.table_name} {self.status}>'
