"""
PrePass adapter (weigh station bypass and toll payment)
"""
from datetime import datetime
from typing import Any, Dict, List

from .base import DEFAULT_TRANSACTION_LIMIT, TollProviderService
from .types import (
    AccountInfo, Location, RouteRequest, TollCalculation, TollPoint, Transaction, parse_datetime
)

VEHICLE_CLASSES = {
    'truck': 'commercial',
    'semi': 'commercial',
    'bus': 'commercial',
    'rv': 'recreational',
    'car': 'passenger',
}


class PrePassService(TollProviderService):
    PROVIDER_CODE = 'prepass'
    DISPLAY_NAME = 'PrePass'
    PROVIDER_TYPE = 'transponder'
    DESCRIPTION = 'Weigh station bypass and toll payment system'
    AUTH_TYPE = 'api_key'
    WEBSITE = 'https://www.prepass.com'
    SUPPORTED_REGIONS = ('US', 'CA')
    FEATURES = {
        'weighStationBypass': True,
        'tollPayment': True,
        'safetyCompliance': True,
        'fleetTracking': True,
        'realTimeNotifications': True,
        'bypassHistory': True,
        'complianceReporting': True,
        'mobileApp': True,
        'customerSupport': True,
        'integrationAPI': True,
    }
    DEFAULT_BASE_URL = 'https://api.prepass.com/v1'
    DEFAULT_RATE_LIMIT = (100, 60000)
    REQUIRED_CREDENTIALS = ('api_key',)

    def get_auth_headers(self) -> Dict[str, str]:
        return {'X-API-Key': self.config.get('api_key', '')}

    def test_connection(self) -> bool:
        return self._check_status('/status', ('operational', 'ok'))

    def calculate_tolls(self, request: RouteRequest) -> TollCalculation:
        payload = {
            'origin': self._point(request.origin),
            'destination': self._point(request.destination),
            'vehicleProfile': {
                'class': self._map(VEHICLE_CLASSES, request.vehicle_class, 'truck', 'commercial'),
                'type': request.vehicle_type or 'truck',
            },
            'includeWeighStations': True,
            'includeTolls': True,
        }
        return self._parse_route(self.http.post('/routes/analyze', payload))

    def get_account_info(self, account_number: str) -> AccountInfo:
        data = self.http.get(f'/customers/{account_number}/account')
        return AccountInfo(
            account_number=data.get('customerId') or account_number,
            account_name=data.get('companyName'),
            balance=self._number(data.get('accountBalance'), 'accountBalance'),
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
        params = self._date_range_params(start_date, end_date, limit)
        params['type'] = 'toll'
        data = self.http.get(f'/customers/{account_number}/transactions', params=params)

        transactions = []
        for tx in self._records(data, 'transactions'):
            location = self._object(tx.get('location'), 'transaction location')
            transactions.append(Transaction(
                transaction_id=self._record_id(tx, 'transactionId'),
                facility_name=tx.get('tollFacility') or tx.get('facilityName'),
                facility_id=tx.get('facilityId'),
                amount=self._number(tx.get('amount'), 'transaction amount'),
                transaction_date=parse_datetime(tx.get('transactionDate')),
                vehicle_class=tx.get('vehicleClass'),
                location=Location(
                    address=location.get('address'),
                    latitude=location.get('latitude'),
                    longitude=location.get('longitude'),
                ),
                status=tx.get('status') or 'completed',
            ))
        return transactions

    def get_bypass_history(self, account_number: str, start_date: datetime, end_date: datetime) -> List[Dict[str, Any]]:
        params = self._date_range_params(start_date, end_date)
        params['type'] = 'bypass'
        data = self.http.get(f'/customers/{account_number}/bypass-history', params=params)
        return self._records(data, 'bypassEvents')

    def get_weigh_stations_on_route(self, origin: Location, destination: Location) -> List[Dict[str, Any]]:
        """Weigh stations between two points with their bypass status"""
        payload = {
            'origin': {'lat': origin.latitude, 'lng': origin.longitude},
            'destination': {'lat': destination.latitude, 'lng': destination.longitude},
        }
        data = self.http.post('/routes/weigh-stations', payload)

        stations = []
        for station in self._records(data, 'weighStations'):
            location = self._object(station.get('location'), 'station location')
            stations.append({
                'station_id': station.get('id'),
                'station_name': station.get('name'),
                'location': {
                    'latitude': location.get('latitude'),
                    'longitude': location.get('longitude'),
                    'address': location.get('address'),
                },
                'bypass_eligible': bool(station.get('bypassEligible')),
                'bypass_status': station.get('currentStatus') or 'unknown',
            })
        return stations

    def _sync_fetches(self, account_number, start_date, end_date):
        fetches = super()._sync_fetches(account_number, start_date, end_date)
        fetches.append((
            'bypass history',
            lambda: self.get_bypass_history(account_number, start_date, end_date)
        ))
        return fetches

    @staticmethod
    def _point(location: Location) -> Dict[str, Any]:
        point = {'address': location.address}
        if location.has_coordinates:
            point['coordinates'] = {'lat': location.latitude, 'lng': location.longitude}
        return point

    def _parse_route(self, response: Dict[str, Any]) -> TollCalculation:
        points = []
        for facility in self._records(response, 'tollFacilities'):
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
            total_cost=response.get('totalTollCost') or 0,
            toll_points=points,
            distance=response.get('totalDistance') or 0,
            duration=response.get('estimatedTravelTime') or 0,
            coordinates=response.get('routeCoordinates'),
            alternatives=[self._parse_route(alt) for alt in self._records(response, 'alternativeRoutes')],
        )
