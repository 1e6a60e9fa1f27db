"""
BestPass adapter (multi-state toll management)

Authenticates with an OAuth client-credentials exchange; the access token
is cached on the adapter until it expires.
"""
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..exceptions import ProviderError
from .base import DEFAULT_TRANSACTION_LIMIT, TollProviderService, logger
from .types import (
    AccountInfo, Location, RouteRequest, TollCalculation, TollPoint, Transaction, parse_datetime
)

VEHICLE_CLASSES = {
    'car': '2-axle',
    'motorcycle': '2-axle',
    'truck': '3-axle',
    'semi': '5-axle',
    'bus': '3-axle',
    'rv': '3-axle',
}

# Refresh this many seconds before the reported expiry
TOKEN_EXPIRY_MARGIN = 30


class BestPassService(TollProviderService):
    PROVIDER_CODE = 'bestpass'
    DISPLAY_NAME = 'BestPass'
    PROVIDER_TYPE = 'payment_system'
    DESCRIPTION = 'Multi-state toll management and payment system'
    AUTH_TYPE = 'oauth'
    WEBSITE = 'https://www.bestpass.com'
    SUPPORTED_REGIONS = (
        'AL', 'CA', 'CO', 'DE', 'FL', 'GA', 'IL', 'IN', 'KS', 'KY', 'LA', 'MA', 'MD',
        'ME', 'NC', 'NH', 'NJ', 'NY', 'OH', 'OK', 'PA', 'RI', 'SC', 'TN', 'TX', 'UT',
        'VA', 'WA', 'WV',
    )
    FEATURES = {
        'multiStateCoverage': True,
        'fleetManagement': True,
        'consolidatedBilling': True,
        'violationManagement': True,
        'realTimeReporting': True,
        'customReports': True,
        'apiAccess': True,
        'mobileApp': True,
        'customerSupport': True,
        'fraudProtection': True,
    }
    DEFAULT_BASE_URL = 'https://api.bestpass.com/v2'
    DEFAULT_RATE_LIMIT = (120, 60000)
    REQUIRED_CREDENTIALS = ('client_id', 'client_secret')
    OPTIONAL_CREDENTIALS = ('access_token',)
    ACCOUNT_RESOURCES = {
        'violations': 'get_violations',
        'vehicles': 'get_fleet_vehicles',
    }

    def __init__(self, config, session=None):
        self._token_lock = threading.Lock()
        self._access_token: Optional[str] = (config or {}).get('access_token')
        self._token_expires_at: Optional[float] = None
        super().__init__(config, session=session)

    def get_auth_headers(self) -> Dict[str, str]:
        if not self._access_token:
            return {}
        return {'Authorization': f'Bearer {self._access_token}'}

    # ==================== OAuth ====================

    def authenticate(self) -> str:
        """Exchange client credentials for an access token"""
        with self._token_lock:
            return self._fetch_token()

    def ensure_authenticated(self) -> None:
        with self._token_lock:
            if self._token_valid():
                return
            self._fetch_token()

    def _token_valid(self) -> bool:
        if not self._access_token:
            return False
        return self._token_expires_at is None or time.monotonic() < self._token_expires_at

    def _fetch_token(self) -> str:
        data = self.http.post_form(
            '/oauth/token',
            {
                'grant_type': 'client_credentials',
                'client_id': self.config.get('client_id', ''),
                'client_secret': self.config.get('client_secret', ''),
            }
        )
        token = data.get('access_token') if isinstance(data, dict) else None
        if not token:
            raise ProviderError(self.DISPLAY_NAME, 'authentication response has no access_token')

        expires_in = data.get('expires_in')
        lifetime = self._number(expires_in, 'expires_in') if expires_in else None
        self._access_token = token
        self._token_expires_at = (
            time.monotonic() + max(lifetime - TOKEN_EXPIRY_MARGIN, 0)
            if lifetime else None
        )
        logger.info(f"[{self.DISPLAY_NAME}] Authentication successful")
        return token

    # ==================== Contract ====================

    def validate_credentials(self) -> bool:
        missing = self.missing_credentials(self.config)
        if missing:
            logger.info(f"[{self.DISPLAY_NAME}] Missing credential fields: {', '.join(missing)}")
            return False
        try:
            self.authenticate()
        except ProviderError as e:
            logger.warning(f"[{self.DISPLAY_NAME}] Credential validation failed: {e.message}")
            return False
        return True

    def test_connection(self) -> bool:
        try:
            self.ensure_authenticated()
        except ProviderError as e:
            logger.warning(f"[{self.DISPLAY_NAME}] Connection test failed: {e.message}")
            return False
        return self._check_status('/health', ('healthy', 'ok'))

    def calculate_tolls(self, request: RouteRequest) -> TollCalculation:
        self.ensure_authenticated()
        payload = {
            'origin': self._point(request.origin),
            'destination': self._point(request.destination),
            'vehicleProfile': {
                'class': self._map(VEHICLE_CLASSES, request.vehicle_class, 'truck', '3-axle'),
                'type': request.vehicle_type,
            },
            'routeOptions': {
                'avoidTolls': request.avoid_tolls,
                'truckRoute': request.truck_route,
                'fastest': request.fastest,
            },
            'includeAlternatives': True,
        }
        response = self.http.post('/routes/calculate', payload)
        calculation = self._parse_route(self._object(response.get('primaryRoute'), 'primaryRoute') or response)
        calculation.alternatives = [
            self._parse_route(alt) for alt in self._records(response, 'alternativeRoutes')
        ]
        return calculation

    def get_account_info(self, account_number: str) -> AccountInfo:
        self.ensure_authenticated()
        data = self.http.get(f'/accounts/{account_number}')
        return AccountInfo(
            account_number=data.get('accountNumber') or account_number,
            account_name=data.get('companyName') or data.get('accountName'),
            balance=self._number(data.get('currentBalance'), 'currentBalance'),
            status=data.get('accountStatus') or 'unknown',
            last_updated=parse_datetime(data.get('lastUpdated')),
        )

    def get_transactions(
        self,
        account_number: str,
        start_date: datetime,
        end_date: datetime,
        limit: int = DEFAULT_TRANSACTION_LIMIT
    ) -> List[Transaction]:
        self.ensure_authenticated()
        params = self._date_range_params(start_date, end_date, limit)
        params['includeDetails'] = 'true'
        data = self.http.get(f'/accounts/{account_number}/transactions', params=params)

        transactions = []
        for tx in self._records(data, 'transactions'):
            facility = self._object(tx.get('tollFacility'), 'tollFacility')
            location = self._object(tx.get('location'), 'transaction location')
            transactions.append(Transaction(
                transaction_id=self._record_id(tx, 'transactionId'),
                facility_name=facility.get('name') or tx.get('facilityName'),
                facility_id=facility.get('id') or tx.get('facilityId'),
                amount=self._number(tx.get('tollAmount'), 'tollAmount'),
                transaction_date=parse_datetime(tx.get('transactionDateTime')),
                vehicle_class=tx.get('vehicleClass'),
                location=Location(
                    address=location.get('address'),
                    latitude=location.get('latitude'),
                    longitude=location.get('longitude'),
                ),
                entry_time=parse_datetime(tx.get('entryDateTime')),
                exit_time=parse_datetime(tx.get('exitDateTime')),
                status=tx.get('transactionStatus') or 'completed',
            ))
        return transactions

    def get_violations(self, account_number: str) -> List[Dict[str, Any]]:
        self.ensure_authenticated()
        data = self.http.get(f'/accounts/{account_number}/violations')
        return self._records(data, 'violations')

    def get_fleet_vehicles(self, account_number: str) -> List[Dict[str, Any]]:
        self.ensure_authenticated()
        data = self.http.get(f'/accounts/{account_number}/vehicles')
        return self._records(data, 'vehicles')

    def _sync_fetches(self, account_number, start_date, end_date):
        fetches = super()._sync_fetches(account_number, start_date, end_date)
        fetches.append(('violations', lambda: self.get_violations(account_number)))
        return fetches

    @staticmethod
    def _point(location: Location) -> Dict[str, Any]:
        point = {'address': location.address}
        if location.has_coordinates:
            point['coordinates'] = {'latitude': location.latitude, 'longitude': location.longitude}
        return point

    def _parse_route(self, route: Dict[str, Any]) -> TollCalculation:
        points = []
        for facility in self._records(route, 'tollFacilities'):
            location = self._object(facility.get('location'), 'facility location')
            points.append(TollPoint(
                facility_name=facility.get('name') or 'Unknown Facility',
                facility_id=facility.get('id'),
                location=Location(
                    address=location.get('address'),
                    latitude=location.get('latitude') or 0,
                    longitude=location.get('longitude') or 0,
                ),
                cost=facility.get('tollCost') or 0,
                vehicle_class=facility.get('vehicleClass'),
            ))
        return TollCalculation(
            total_cost=route.get('totalTollCost') or 0,
            toll_points=points,
            distance=route.get('totalDistance') or 0,
            duration=route.get('estimatedTravelTime') or 0,
            coordinates=route.get('routeGeometry'),
        )
