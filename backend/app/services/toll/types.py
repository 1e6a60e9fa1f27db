"""
Value types shared by the toll provider adapters

Adapters translate provider payloads into these types; the API layer turns
them back into JSON through ``to_dict``.
"""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..exceptions import ValidationError


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + 'Z' if value else None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Best effort parse of provider timestamps (ISO 8601 strings)"""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        return None


@dataclass
class Location:
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    state: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_dict(cls, data: Any, field_name: str) -> 'Location':
        if not isinstance(data, dict):
            raise ValidationError(f'{field_name} must be an object', field=field_name)

        latitude = data.get('latitude')
        longitude = data.get('longitude')
        try:
            latitude = float(latitude) if latitude is not None else None
            longitude = float(longitude) if longitude is not None else None
        except (TypeError, ValueError):
            raise ValidationError(f'{field_name} coordinates must be numbers', field=field_name)

        location = cls(
            address=data.get('address'),
            latitude=latitude,
            longitude=longitude,
            state=(data.get('state') or '').upper() or None,
        )
        if not location.address and not location.has_coordinates:
            raise ValidationError(f'{field_name} needs an address or latitude/longitude', field=field_name)
        return location


@dataclass
class RouteRequest:
    """A toll quote request"""
    origin: Location
    destination: Location
    vehicle_class: Optional[str] = None
    vehicle_type: Optional[str] = None
    avoid_tolls: bool = False
    fastest: bool = False
    shortest: bool = False
    truck_route: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> 'RouteRequest':
        """Build a request from an API payload, raising ValidationError"""
        if not isinstance(data, dict):
            raise ValidationError('Route request must be a JSON object')

        options = data.get('route_options') or {}
        if not isinstance(options, dict):
            raise ValidationError('route_options must be an object', field='route_options')

        return cls(
            origin=Location.from_dict(data.get('origin'), 'origin'),
            destination=Location.from_dict(data.get('destination'), 'destination'),
            vehicle_class=data.get('vehicle_class'),
            vehicle_type=data.get('vehicle_type'),
            avoid_tolls=bool(data.get('avoid_tolls', False)),
            fastest=bool(options.get('fastest', False)),
            shortest=bool(options.get('shortest', False)),
            truck_route=bool(options.get('truck_route', False)),
        )


@dataclass
class TollPoint:
    facility_name: str
    cost: float
    facility_id: Optional[str] = None
    location: Location = field(default_factory=Location)
    vehicle_class: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TollCalculation:
    total_cost: float
    currency: str = 'USD'
    toll_points: List[TollPoint] = field(default_factory=list)
    distance: float = 0
    duration: float = 0
    coordinates: Optional[List[List[float]]] = None
    alternatives: List['TollCalculation'] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_cost': self.total_cost,
            'currency': self.currency,
            'toll_points': [point.to_dict() for point in self.toll_points],
            'route': {
                'distance': self.distance,
                'duration': self.duration,
                'coordinates': self.coordinates,
            },
            'alternatives': [alt.to_dict() for alt in self.alternatives],
        }


@dataclass
class AccountInfo:
    account_number: str
    account_name: Optional[str]
    balance: float
    status: str
    currency: str = 'USD'
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_number': self.account_number,
            'account_name': self.account_name,
            'balance': self.balance,
            'currency': self.currency,
            'status': self.status,
            'last_updated': _iso(self.last_updated),
        }


@dataclass
class Transaction:
    transaction_id: str
    facility_name: Optional[str]
    amount: float
    transaction_date: Optional[datetime]
    status: str = 'completed'
    currency: str = 'USD'
    facility_id: Optional[str] = None
    vehicle_class: Optional[str] = None
    location: Optional[Location] = None
    entry_time: Optional[datetime] = None
    exit_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'transaction_id': self.transaction_id,
            'facility_name': self.facility_name,
            'facility_id': self.facility_id,
            'amount': self.amount,
            'currency': self.currency,
            'transaction_date': _iso(self.transaction_date),
            'vehicle_class': self.vehicle_class,
            'location': asdict(self.location) if self.location else None,
            'entry_time': _iso(self.entry_time),
            'exit_time': _iso(self.exit_time),
            'status': self.status,
        }


@dataclass
class SyncResult:
    """Outcome of one adapter sync_account_data call

    success is False when a secondary fetch failed; the messages are in
    errors. Transport failures on the essential account fetch raise instead.
    transactions holds what was fetched and is not part of the API payload.
    """
    success: bool
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    errors: List[str] = field(default_factory=list)
    sync_duration_ms: int = 0
    transactions: List[Transaction] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'records_processed': self.records_processed,
            'records_created': self.records_created,
            'records_updated': self.records_updated,
            'errors': list(self.errors),
            'sync_duration_ms': self.sync_duration_ms,
        }
