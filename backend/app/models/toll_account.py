"""
Company toll account model
Provider credentials are only ever stored encrypted
"""
from datetime import datetime
from typing import Any, Dict, Optional

from ..extensions import db

SYNC_STATUSES = ('pending', 'syncing', 'success', 'error')


class CompanyTollAccount(db.Model):
    """A company's account with one toll provider

    sync_status follows pending -> syncing -> success | error; every new
    attempt re-enters syncing. account_status is the business lifecycle and
    is independent of syncing.
    """
    __tablename__ = 'company_toll_accounts'
    __table_args__ = (
        db.UniqueConstraint('company_id', 'toll_provider_id', 'account_number',
                            name='uq_company_provider_account'),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    company_id = db.Column(db.Integer, nullable=False, index=True)
    toll_provider_id = db.Column(db.Integer, db.ForeignKey('toll_providers.id'), nullable=False, index=True)
    account_number = db.Column(db.String(64), nullable=False)
    account_name = db.Column(db.String(128))

    # Fernet token, see utils.crypto
    encrypted_credentials = db.Column(db.Text)
    account_settings = db.Column(db.JSON, default=dict)

    account_status = db.Column(db.String(16), default='active', nullable=False)  # active, inactive, suspended

    # Sync state
    sync_status = db.Column(db.String(16), default='pending', nullable=False)  # pending, syncing, success, error
    sync_error_message = db.Column(db.Text)
    sync_started_at = db.Column(db.DateTime)  # set when entering 'syncing', used for stale detection
    last_sync_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    provider = db.relationship('TollProvider', back_populates='accounts')
    sync_logs = db.relationship(
        'TollSyncLog',
        back_populates='account',
        lazy='dynamic',
        cascade='all, delete-orphan',
    )
    transactions = db.relationship(
        'TollTransaction',
        back_populates='account',
        lazy='dynamic',
        cascade='all, delete-orphan',
    )

    @property
    def has_credentials(self) -> bool:
        return bool(self.encrypted_credentials)

    def get_credentials(self) -> Dict[str, Any]:
        """Decrypted credentials; empty dict when none are stored"""
        if not self.encrypted_credentials:
            return {}
        from ..utils.crypto import decrypt_credentials
        return decrypt_credentials(self.encrypted_credentials)

    def set_credentials(self, credentials: Optional[Dict[str, Any]]) -> None:
        """Encrypt and store credentials; None or {} clears them"""
        if not credentials:
            self.encrypted_credentials = None
            return
        from ..utils.crypto import encrypt_credentials
        self.encrypted_credentials = encrypt_credentials(credentials)

    def to_dict(self):
        """Serialize without any credential material"""
        return {
            'id': self.id,
            'company_id': self.company_id,
            'toll_provider_id': self.toll_provider_id,
            'provider': self.provider.to_summary() if self.provider else None,
            'account_number': self.account_number,
            'account_name': self.account_name,
            'has_credentials': self.has_credentials,
            'account_settings': dict(self.account_settings or {}),
            'account_status': self.account_status,
            'sync_status': self.sync_status,
            'sync_error_message': self.sync_error_message,
            'last_sync_at': self.last_sync_at.isoformat() + 'Z' if self.last_sync_at else None,
            'created_at': self.created_at.isoformat() + 'Z' if self.created_at else None,
            'updated_at': self.updated_at.isoformat() + 'Z' if self.updated_at else None,
        }

    def __repr__(self):
        return f'<CompanyTollAccount {self.account_number} company={self.company_id}>'
