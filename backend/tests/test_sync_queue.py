"""
Sync Queue Tests

Outbox enqueue / processing, item isolation and company scoping.
"""
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from app.extensions import db
from app.models import Driver, SyncQueueItem, Vehicle
from app.services.exceptions import NotFoundError, ValidationError
from app.services.sync_queue_service import SyncQueueService

COMPANY_ID = 1
OTHER_COMPANY_ID = 2


def queue_item(table_name, action, payload, company_id=COMPANY_ID, status='pending', age_seconds=0):
    """Insert a queue row directly, skipping enqueue validation."""
    item = SyncQueueItem(
        company_id=company_id,
        table_name=table_name,
        action=action,
        payload=payload,
        status=status,
        created_at=datetime.utcnow() - timedelta(seconds=age_seconds),
    )
    db.session.add(item)
    db.session.commit()
    return item


def add_vehicle(company_id=COMPANY_ID, unit_number='T-1', **fields):
    vehicle = Vehicle(company_id=company_id, unit_number=unit_number, **fields)
    db.session.add(vehicle)
    db.session.commit()
    return vehicle


class TestEnqueue:

    def test_enqueue_create(self, app):
        item = SyncQueueService.enqueue(COMPANY_ID, 'vehicles', 'create', {'unit_number': 'T-100'})

        assert item.id is not None
        assert item.status == 'pending'
        assert item.company_id == COMPANY_ID
        assert item.payload == {'unit_number': 'T-100'}

    @pytest.mark.parametrize('table_name, action, payload', [
        ('vehicles', 'upsert', {'unit_number': 'T-1'}),
        ('toll_providers', 'create', {'name': 'x'}),
        ('no_such_table', 'create', {}),
        ('vehicles', 'create', {'colour': 'red'}),
        ('vehicles', 'update', {'make': 'Volvo'}),
        ('vehicles', 'delete', {}),
        ('vehicles', 'create', ['unit_number']),
    ])
    def test_enqueue_rejects_bad_items(self, app, table_name, action, payload):
        with pytest.raises(ValidationError):
            SyncQueueService.enqueue(COMPANY_ID, table_name, action, payload)

        assert SyncQueueItem.query.count() == 0


class TestProcessQueue:

    def test_empty_queue(self, app):
        assert SyncQueueService.process_queue() == {'success': True, 'processed': 0, 'failed': 0}

    def test_failed_item_does_not_block_others(self, app):
        first = queue_item('vehicles', 'create', {'unit_number': 'T-1'}, age_seconds=30)
        broken = queue_item('vehicles', 'update', {'id': 999, 'make': 'Volvo'}, age_seconds=20)
        last = queue_item('drivers', 'create', {'name': 'Dana Cole'}, age_seconds=10)

        result = SyncQueueService.process_queue()

        assert result == {'success': True, 'processed': 2, 'failed': 1}
        assert db.session.get(SyncQueueItem, first.id).status == 'processed'
        assert db.session.get(SyncQueueItem, last.id).status == 'processed'

        failed = db.session.get(SyncQueueItem, broken.id)
        assert failed.status == 'failed'
        assert failed.error_message == 'No vehicles row 999 for this company'
        assert failed.processed_at is not None

        assert Vehicle.query.count() == 1
        assert Driver.query.count() == 1

    def test_database_error_marks_item_failed(self, app):
        broken = queue_item('vehicles', 'create', {'make': 'Volvo'}, age_seconds=10)
        ok = queue_item('vehicles', 'create', {'unit_number': 'T-2'})

        result = SyncQueueService.process_queue()

        assert result == {'success': True, 'processed': 1, 'failed': 1}
        failed = db.session.get(SyncQueueItem, broken.id)
        assert failed.status == 'failed'
        assert failed.error_message.startswith('Database error')
        assert db.session.get(SyncQueueItem, ok.id).status == 'processed'

    def test_create_uses_item_company(self, app):
        queue_item('vehicles', 'create', {'unit_number': 'T-9', 'company_id': OTHER_COMPANY_ID, 'id': 77})

        SyncQueueService.process_queue()

        vehicle = Vehicle.query.one()
        assert vehicle.company_id == COMPANY_ID
        assert vehicle.unit_number == 'T-9'

    def test_update_scoped_to_company(self, app):
        vehicle = add_vehicle(company_id=OTHER_COMPANY_ID, make='Kenworth')
        item = queue_item('vehicles', 'update', {'id': vehicle.id, 'make': 'Volvo'})

        result = SyncQueueService.process_queue()

        assert result['failed'] == 1
        assert db.session.get(SyncQueueItem, item.id).status == 'failed'
        db.session.expire_all()
        assert db.session.get(Vehicle, vehicle.id).make == 'Kenworth'

    def test_update_own_row(self, app):
        vehicle = add_vehicle(make='Kenworth')
        queue_item('vehicles', 'update', {'id': vehicle.id, 'make': 'Volvo', 'company_id': OTHER_COMPANY_ID})

        result = SyncQueueService.process_queue()

        assert result['processed'] == 1
        db.session.expire_all()
        updated = db.session.get(Vehicle, vehicle.id)
        assert updated.make == 'Volvo'
        assert updated.company_id == COMPANY_ID

    def test_delete_scoped_to_company(self, app):
        own = add_vehicle(unit_number='OWN')
        foreign = add_vehicle(company_id=OTHER_COMPANY_ID, unit_number='FOREIGN')
        queue_item('vehicles', 'delete', {'id': own.id}, age_seconds=5)
        queue_item('vehicles', 'delete', {'id': foreign.id})

        result = SyncQueueService.process_queue()

        assert result == {'success': True, 'processed': 1, 'failed': 1}
        db.session.expire_all()
        assert [v.unit_number for v in Vehicle.query.all()] == ['FOREIGN']

    def test_unknown_column_fails_item(self, app):
        item = queue_item('vehicles', 'create', {'unit_number': 'T-1', 'colour': 'red'})

        SyncQueueService.process_queue()

        failed = db.session.get(SyncQueueItem, item.id)
        assert failed.status == 'failed'
        assert 'colour' in failed.error_message
        assert Vehicle.query.count() == 0

    def test_disallowed_table_fails_item(self, app):
        item = queue_item('toll_providers', 'delete', {'id': 1})

        SyncQueueService.process_queue()

        assert db.session.get(SyncQueueItem, item.id).status == 'failed'

    def test_processed_items_are_not_replayed(self, app):
        queue_item('vehicles', 'create', {'unit_number': 'T-1'})

        SyncQueueService.process_queue()
        second = SyncQueueService.process_queue()

        assert second == {'success': True, 'processed': 0, 'failed': 0}
        assert Vehicle.query.count() == 1

    def test_fetch_failure(self, app):
        queue_item('vehicles', 'create', {'unit_number': 'T-1'})

        with patch.object(SyncQueueService, '_pending_ids',
                          side_effect=OperationalError('SELECT', {}, Exception('locked'))):
            result = SyncQueueService.process_queue()

        assert result == {
            'success': False,
            'processed': 0,
            'failed': 0,
            'message': 'Failed to read the sync queue',
            'error': 'QUEUE_FETCH_FAILED',
        }
        assert SyncQueueItem.query.one().status == 'pending'

    def test_non_object_payload_fails_only_that_item(self, app):
        first = queue_item('vehicles', 'create', {'unit_number': 'T-1'}, age_seconds=30)
        broken = queue_item('vehicles', 'create', ['not', 'a', 'dict'], age_seconds=20)
        last = queue_item('vehicles', 'create', {'unit_number': 'T-2'}, age_seconds=10)

        result = SyncQueueService.process_queue()

        assert result == {'success': True, 'processed': 2, 'failed': 1}
        failed = db.session.get(SyncQueueItem, broken.id)
        assert failed.status == 'failed'
        assert failed.error_message == 'payload must be an object'
        assert db.session.get(SyncQueueItem, first.id).status == 'processed'
        assert db.session.get(SyncQueueItem, last.id).status == 'processed'
        assert sorted(v.unit_number for v in Vehicle.query.all()) == ['T-1', 'T-2']

    def test_unexpected_error_fails_only_that_item(self, app):
        first = queue_item('vehicles', 'create', {'unit_number': 'T-1'}, age_seconds=30)
        broken = queue_item('vehicles', 'create', {'unit_number': 'T-2'}, age_seconds=20)
        last = queue_item('vehicles', 'create', {'unit_number': 'T-3'}, age_seconds=10)
        original_apply = SyncQueueService._apply

        def apply(item):
            if item.id == broken.id:
                raise TypeError('unhashable type')
            original_apply(item)

        with patch.object(SyncQueueService, '_apply', side_effect=apply):
            result = SyncQueueService.process_queue()

        assert result == {'success': True, 'processed': 2, 'failed': 1}
        failed = db.session.get(SyncQueueItem, broken.id)
        assert failed.status == 'failed'
        assert failed.error_message == 'Unexpected error: TypeError: unhashable type'
        assert db.session.get(SyncQueueItem, first.id).status == 'processed'
        assert db.session.get(SyncQueueItem, last.id).status == 'processed'

    def test_missing_id_in_the_middle(self, app):
        vehicle = add_vehicle(make='Kenworth')
        queue_item('vehicles', 'create', {'unit_number': 'T-2'}, age_seconds=30)
        broken = queue_item('vehicles', 'update', {'make': 'Volvo'}, age_seconds=20)
        queue_item('vehicles', 'update', {'id': vehicle.id, 'make': 'Mack'}, age_seconds=10)

        result = SyncQueueService.process_queue()

        assert result == {'success': True, 'processed': 2, 'failed': 1}
        assert db.session.get(SyncQueueItem, broken.id).error_message == 'Missing id for update'
        db.session.expire_all()
        assert db.session.get(Vehicle, vehicle.id).make == 'Mack'
        assert Vehicle.query.count() == 2


class TestQueueOrdering:

    def test_last_update_wins(self, app):
        vehicle = add_vehicle(make='Kenworth')
        queue_item('vehicles', 'update', {'id': vehicle.id, 'make': 'Volvo'}, age_seconds=20)
        queue_item('vehicles', 'update', {'id': vehicle.id, 'make': 'Peterbilt'}, age_seconds=10)

        result = SyncQueueService.process_queue()

        assert result == {'success': True, 'processed': 2, 'failed': 0}
        db.session.expire_all()
        assert db.session.get(Vehicle, vehicle.id).make == 'Peterbilt'

    def test_same_timestamp_falls_back_to_insert_order(self, app):
        vehicle = add_vehicle(make='Kenworth')
        created_at = datetime.utcnow()
        for make in ('Volvo', 'Mack'):
            db.session.add(SyncQueueItem(
                company_id=COMPANY_ID,
                table_name='vehicles',
                action='update',
                payload={'id': vehicle.id, 'make': make},
                status='pending',
                created_at=created_at,
            ))
        db.session.commit()

        SyncQueueService.process_queue()

        db.session.expire_all()
        assert db.session.get(Vehicle, vehicle.id).make == 'Mack'

    def test_create_then_delete(self, app):
        queue_item('vehicles', 'create', {'unit_number': 'T-7'}, age_seconds=20)
        SyncQueueService.process_queue()
        vehicle = Vehicle.query.filter_by(unit_number='T-7').one()

        queue_item('vehicles', 'delete', {'id': vehicle.id})
        result = SyncQueueService.process_queue()

        assert result == {'success': True, 'processed': 1, 'failed': 0}
        assert Vehicle.query.count() == 0
        assert SyncQueueItem.query.filter_by(status='processed').count() == 2


class TestQueueStatus:

    def test_counts_per_company(self, app):
        queue_item('vehicles', 'create', {'unit_number': 'A'})
        queue_item('vehicles', 'create', {'unit_number': 'B'}, status='processed')
        queue_item('vehicles', 'create', {'unit_number': 'C'}, status='failed')
        queue_item('vehicles', 'create', {'unit_number': 'D'}, company_id=OTHER_COMPANY_ID)

        assert SyncQueueService.get_status(COMPANY_ID) == {'pending': 1, 'processed': 1, 'failed': 1}
        assert SyncQueueService.get_status() == {'pending': 2, 'processed': 1, 'failed': 1}


class TestRequeue:

    def test_requeue_failed_item(self, app):
        failed = queue_item('vehicles', 'create', {'unit_number': 'T-1'}, status='failed')

        copy = SyncQueueService.requeue(COMPANY_ID, failed.id)

        assert copy.id != failed.id
        assert copy.status == 'pending'
        assert copy.payload == {'unit_number': 'T-1'}
        assert db.session.get(SyncQueueItem, failed.id).status == 'failed'

    def test_requeue_pending_item(self, app):
        item = queue_item('vehicles', 'create', {'unit_number': 'T-1'})

        with pytest.raises(ValidationError) as exc_info:
            SyncQueueService.requeue(COMPANY_ID, item.id)

        assert exc_info.value.error_code == 'NOT_FAILED'

    def test_requeue_other_company(self, app):
        item = queue_item('vehicles', 'create', {'unit_number': 'T-1'}, status='failed',
                          company_id=OTHER_COMPANY_ID)

        with pytest.raises(NotFoundError):
            SyncQueueService.requeue(COMPANY_ID, item.id)
