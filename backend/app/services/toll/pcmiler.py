"""
PC Miler adapter (route planning and toll costing for North America)

PC Miler is not an account-based toll network; account info reports API
credits and "transactions" are API usage records.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import DEFAULT_TRANSACTION_LIMIT, TollProviderService
from .types import (
    AccountInfo, Location, RouteRequest, TollCalculation, TollPoint, Transaction, parse_datetime
)

VEHICLE_TYPES = {
    'truck': 'Truck',
    'car': 'Auto',
    'motorcycle': 'Auto',
    'bus': 'Bus',
    'rv': 'RV',
}


class PCMilerService(TollProviderService):
    PROVIDER_CODE = 'pcmiler'
    DISPLAY_NAME = 'PC Miler'
    PROVIDER_TYPE = 'route_planning'
    DESCRIPTION = 'Route optimization and toll calculation for North America'
    AUTH_TYPE = 'api_key'
    WEBSITE = 'https://www.pcmiler.com'
    SUPPORTED_REGIONS = ('US', 'CA', 'MX')
    FEATURES = {
        'routeOptimization': True,
        'tollCalculation': True,
        'mileageReports': True,
        'truckRouting': True,
        'hazmatRouting': True,
        'realTimeTraffic': True,
        'multipleStops': True,
        'routeAlternatives': True,
        'geocoding': True,
        'reverseGeocoding': True,
    }
    DEFAULT_BASE_URL = 'https://api.pcmiler.com/v1'
    DEFAULT_RATE_LIMIT = (100, 60000)
    REQUIRED_CREDENTIALS = ('api_key',)
    OPTIONAL_CREDENTIALS = ('region', 'units', 'route_type')

    def __init__(self, config, session=None):
        super().__init__(config, session=session)
        self.region = self.config.get('region', 'NA')
        self.units = self.config.get('units', 'Miles')
        self.route_type = self.config.get('route_type', 'Practical')

    def get_auth_headers(self) -> Dict[str, str]:
        return {'Authorization': f"Bearer {self.config.get('api_key', '')}"}

    def test_connection(self) -> bool:
        return self._check_status('/ping', ('ok',))

    def calculate_tolls(self, request: RouteRequest) -> TollCalculation:
        payload = {
            'Stops': [self._stop(request.origin), self._stop(request.destination)],
            'ReportType': 'Detailed',
            'RouteType': self.route_type,
            'Units': self.units,
            'Region': self.region,
            'VehicleType': self._map(VEHICLE_TYPES, request.vehicle_type, 'truck', 'Truck'),
            'IncludeTolls': True,
            'IncludeRouteGeometry': True,
            'Options': {
                'AvoidTolls': request.avoid_tolls,
                'TruckRoute': request.truck_route,
            },
        }
        return self._parse_route(self.http.post('/route', payload))

    def get_account_info(self, account_number: str) -> AccountInfo:
        data = self.http.get(f'/account/{account_number}')
        return AccountInfo(
            account_number=data.get('accountNumber') or account_number,
            account_name=data.get('accountName'),
            balance=self._number(data.get('apiCredits'), 'apiCredits'),
            status=data.get('status') or 'active',
            last_updated=datetime.utcnow(),
        )

    def get_transactions(
        self,
        account_number: str,
        start_date: datetime,
        end_date: datetime,
        limit: int = DEFAULT_TRANSACTION_LIMIT
    ) -> List[Transaction]:
        params = {
            'startDate': start_date.isoformat() + 'Z',
            'endDate': end_date.isoformat() + 'Z',
            'limit': str(limit),
        }
        data = self.http.get(f'/account/{account_number}/usage', params=params)
        return [
            Transaction(
                transaction_id=self._record_id(usage, 'id'),
                facility_name='PC Miler API Usage',
                amount=self._number(usage.get('cost'), 'usage cost'),
                transaction_date=parse_datetime(usage.get('timestamp')),
            )
            for usage in self._records(data, 'usage')
        ]

    @staticmethod
    def _stop(location: Location) -> Dict[str, Any]:
        stop = {'Address': location.address}
        if location.has_coordinates:
            stop['Coords'] = f'{location.latitude},{location.longitude}'
        return stop

    def _parse_route(self, response: Dict[str, Any]) -> TollCalculation:
        route = self._object(response.get('Route'), 'Route') or response
        return TollCalculation(
            total_cost=route.get('TollCost') or 0,
            toll_points=[self._parse_toll(toll) for toll in self._records(route, 'TollDetails')],
            distance=route.get('TMiles') or route.get('Distance') or 0,
            duration=route.get('TTime') or route.get('Duration') or 0,
            coordinates=self._parse_geometry(route.get('Geometry')),
            alternatives=[self._parse_route(alt) for alt in self._records(route, 'Alternatives')],
        )

    @staticmethod
    def _parse_toll(toll: Dict[str, Any]) -> TollPoint:
        return TollPoint(
            facility_name=toll.get('Name') or toll.get('FacilityName') or 'Unknown Toll',
            facility_id=toll.get('Id') or toll.get('FacilityId'),
            location=Location(
                address=toll.get('Address'),
                latitude=toll.get('Lat') or toll.get('Latitude') or 0,
                longitude=toll.get('Lon') or toll.get('Longitude') or 0,
            ),
            cost=toll.get('Cost') or toll.get('Amount') or 0,
            vehicle_class=toll.get('VehicleClass'),
        )

    @staticmethod
    def _parse_geometry(geometry: Any) -> Optional[List[List[float]]]:
        """Geometry comes as [{Lat, Lon}] or [[lon, lat]]; returned as [lat, lon] pairs"""
        if not isinstance(geometry, list):
            return None
        points = []
        for point in geometry:
            if isinstance(point, dict):
                points.append([point.get('Lat'), point.get('Lon')])
            elif isinstance(point, (list, tuple)) and len(point) >= 2:
                points.append([point[1], point[0]])
        return points
