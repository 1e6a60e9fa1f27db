"""
Outbound sync queue (outbox) service

Writers append SyncQueueItem rows; process_queue replays the pending ones
against their target tables. Each item is applied and committed on its own
so one bad item never blocks or rolls back the others.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import Table
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import SyncQueueItem
from ..utils.logger import get_logger, log_queue_event
from ..utils.validators import validate_sync_action
from .exceptions import NotFoundError, QueueItemError, ValidationError

logger = get_logger('sync_queue')

# Columns a queued payload may never set directly
PROTECTED_COLUMNS = ('id', 'company_id')


class SyncQueueService:
    """Enqueue and drain outbound sync items.

    Example:
        >>> SyncQueueService.enqueue(7, 'vehicles', 'create', {'unit_number': 'T-100'})
        >>> SyncQueueService.process_queue()
        {'success': True, 'processed': 1, 'failed': 0}
    """

    # ==================== Targets ====================

    @staticmethod
    def allowed_tables():
        return current_app.config.get('SYNC_QUEUE_TABLES', [])

    @classmethod
    def resolve_table(cls, table_name: str) -> Table:
        """Target table for a queue item.

        Raises:
            QueueItemError: Table not allowed, unknown, or not company scoped
        """
        if table_name not in cls.allowed_tables():
            raise QueueItemError(f'Table not allowed for sync: {table_name}')

        table = db.metadata.tables.get(table_name)
        if table is None:
            raise QueueItemError(f'Unknown table: {table_name}')

        if 'company_id' not in table.c:
            raise QueueItemError(f'Table has no company scope: {table_name}')
        return table

    @staticmethod
    def _values(table: Table, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Payload restricted to real, writable columns"""
        unknown = [key for key in payload if key not in table.c]
        if unknown:
            raise QueueItemError(f"Unknown column(s) for {table.name}: {', '.join(sorted(unknown))}")
        return {key: value for key, value in payload.items() if key not in PROTECTED_COLUMNS}

    @staticmethod
    def _row_id(payload: Dict[str, Any], action: str):
        row_id = payload.get('id')
        if row_id is None or row_id == '':
            raise QueueItemError(f'Missing id for {action}')
        return row_id

    # ==================== Enqueue ====================

    @classmethod
    def enqueue(cls, company_id: int, table_name: str, action: str, payload: Dict[str, Any]) -> SyncQueueItem:
        """Append a pending item after checking its shape.

        Raises:
            ValidationError: Bad action, table or payload
        """
        is_valid, error_msg, action = validate_sync_action(action)
        if not is_valid:
            raise ValidationError(error_msg, field='action')

        if not isinstance(payload, dict):
            raise ValidationError('payload must be an object', field='payload')

        try:
            table = cls.resolve_table(table_name)
            cls._values(table, payload)
            if action in ('update', 'delete'):
                cls._row_id(payload, action)
        except QueueItemError as e:
            raise ValidationError(e.message, field='payload')

        item = SyncQueueItem(
            company_id=company_id,
            table_name=table_name,
            action=action,
            payload=payload,
            status='pending',
        )
        db.session.add(item)
        db.session.commit()

        log_queue_event(item.id, 'enqueued', {'table': table_name, 'action': action, 'company': company_id})
        return item

    # ==================== Processing ====================

    @classmethod
    def process_queue(cls) -> Dict[str, Any]:
        """Apply every pending item in FIFO order.

        Returns:
            {'success': bool, 'processed': n, 'failed': n}; success is False
            only when the pending items could not be fetched
        """
        try:
            item_ids = cls._pending_ids()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Failed to fetch pending sync queue items: {e}")
            return {
                'success': False,
                'processed': 0,
                'failed': 0,
                'message': 'Failed to read the sync queue',
                'error': 'QUEUE_FETCH_FAILED',
            }

        processed = failed = 0
        for item_id in item_ids:
            if cls._process_item(item_id):
                processed += 1
            else:
                failed += 1

        if item_ids:
            logger.info(f"Sync queue drained: processed={processed}, failed={failed}")
        return {'success': True, 'processed': processed, 'failed': failed}

    @staticmethod
    def _pending_ids():
        """Ids of pending items, oldest first"""
        return [
            item_id for (item_id,) in db.session.query(SyncQueueItem.id)
            .filter(SyncQueueItem.status == 'pending')
            .order_by(SyncQueueItem.created_at, SyncQueueItem.id)
            .all()
        ]

    @classmethod
    def _process_item(cls, item_id: int) -> bool:
        item = db.session.get(SyncQueueItem, item_id)
        if item is None or item.status != 'pending':
            return True

        try:
            cls._apply(item)
            item.status = 'processed'
            item.error_message = None
            item.processed_at = datetime.utcnow()
            db.session.commit()
            log_queue_event(item.id, 'processed', {'table': item.table_name, 'action': item.action})
            return True
        except (QueueItemError, SQLAlchemyError) as e:
            db.session.rollback()
            message = e.message if isinstance(e, QueueItemError) else f'Database error: {e.__class__.__name__}'
            logger.error(f"Error processing sync item {item_id}: {e}")
            cls._mark_failed(item_id, message)
            return False
        except Exception as e:
            db.session.rollback()
            logger.exception(f"Unexpected error processing sync item {item_id}: {e}")
            cls._mark_failed(item_id, f'Unexpected error: {e.__class__.__name__}: {e}')
            return False

    @staticmethod
    def _mark_failed(item_id: int, message: str) -> None:
        item = db.session.get(SyncQueueItem, item_id)
        item.status = 'failed'
        item.error_message = message[:1000]
        item.processed_at = datetime.utcnow()
        db.session.commit()
        log_queue_event(item_id, 'failed', {'error': message})

    @classmethod
    def _apply(cls, item: SyncQueueItem) -> None:
        """Replay one item against its table inside the item's company scope"""
        table = cls.resolve_table(item.table_name)
        if item.payload is not None and not isinstance(item.payload, dict):
            raise QueueItemError('payload must be an object')
        payload = dict(item.payload or {})

        if item.action == 'create':
            if 'company_id' in payload and payload['company_id'] != item.company_id:
                logger.warning(
                    f"Sync item {item.id} payload company {payload['company_id']} overridden "
                    f"with item company {item.company_id}"
                )
            values = cls._values(table, payload)
            values['company_id'] = item.company_id
            db.session.execute(table.insert().values(**values))

        elif item.action == 'update':
            row_id = cls._row_id(payload, 'update')
            values = cls._values(table, payload)
            if not values:
                raise QueueItemError('Nothing to update')
            result = db.session.execute(
                table.update()
                .where(table.c.id == row_id, table.c.company_id == item.company_id)
                .values(**values)
            )
            if result.rowcount == 0:
                raise QueueItemError(f'No {item.table_name} row {row_id} for this company')

        elif item.action == 'delete':
            row_id = cls._row_id(payload, 'delete')
            result = db.session.execute(
                table.delete().where(table.c.id == row_id, table.c.company_id == item.company_id)
            )
            if result.rowcount == 0:
                raise QueueItemError(f'No {item.table_name} row {row_id} for this company')

        else:
            raise QueueItemError(f'Unknown action: {item.action}')

    # ==================== Status ====================

    @staticmethod
    def get_status(company_id: Optional[int] = None) -> Dict[str, int]:
        """Item counts per status, optionally for one company"""
        query = db.session.query(SyncQueueItem.status, db.func.count(SyncQueueItem.id))
        if company_id is not None:
            query = query.filter(SyncQueueItem.company_id == company_id)
        counts = dict(query.group_by(SyncQueueItem.status).all())
        return {
            'pending': counts.get('pending', 0),
            'processed': counts.get('processed', 0),
            'failed': counts.get('failed', 0),
        }

    @staticmethod
    def requeue(company_id: int, item_id: int) -> SyncQueueItem:
        """Copy a failed item into a new pending item.

        The failed item itself stays failed.

        Raises:
            NotFoundError: No such item for this company
            ValidationError: Item is not failed
        """
        item = SyncQueueItem.query.filter_by(id=item_id, company_id=company_id).first()
        if item is None:
            raise NotFoundError('Sync queue item not found')
        if item.status != 'failed':
            raise ValidationError('Only failed items can be requeued', error_code='NOT_FAILED')

        copy = SyncQueueItem(
            company_id=item.company_id,
            table_name=item.table_name,
            action=item.action,
            payload=item.payload,
            status='pending',
        )
        db.session.add(copy)
        db.session.commit()

        log_queue_event(copy.id, 'requeued', {'from_item': item.id})
        return copy
