"""
Toll provider catalog model
"""
from datetime import datetime
from ..extensions import db


class TollProvider(db.Model):
    """Catalog entry for an external toll network"""
    __tablename__ = 'toll_providers'

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    # Registry identifier used to pick the adapter (pcmiler, ipass, ...)
    code = db.Column(db.String(32), unique=True, nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    provider_type = db.Column(db.String(32))
    description = db.Column(db.Text)
    api_endpoint = db.Column(db.String(512), nullable=False)
    supported_regions = db.Column(db.JSON, default=list)
    features = db.Column(db.JSON, default=dict)
    auth_type = db.Column(db.String(32))
    website = db.Column(db.String(256))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    accounts = db.relationship('CompanyTollAccount', back_populates='provider', lazy='dynamic')

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
            'provider_type': self.provider_type,
            'description': self.description,
            'api_endpoint': self.api_endpoint,
            'supported_regions': list(self.supported_regions or []),
            'features': dict(self.features or {}),
            'auth_type': self.auth_type,
            'website': self.website,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() + 'Z' if self.created_at else None,
        }

    def to_summary(self):
        """Short form embedded in account payloads"""
        return {
            'id': self.id,
            'code': self.code,
            'name': self.name,
        }

    def __repr__(self):
        return f'<TollProvider {self.code}>'
