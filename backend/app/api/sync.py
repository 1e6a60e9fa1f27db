"""
Sync queue API
"""
from flask import Blueprint, g, jsonify, request

from ..middleware.auth import require_company
from ..services.exceptions import ValidationError
from ..services.sync_queue_service import SyncQueueService
from ..utils.responses import ApiResponse, success_response

sync_bp = Blueprint('sync', __name__)


@sync_bp.route('/sync/queue', methods=['POST'])
@require_company
def enqueue_item():
    """
    Queue a mutation for asynchronous replay

    Request Body:
        - table_name: target table (see SYNC_QUEUE_TABLES)
        - action: create, update or delete
        - payload: column values; update/delete need the row id
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')

    item = SyncQueueService.enqueue(
        g.company_id,
        data.get('table_name'),
        data.get('action'),
        data.get('payload'),
    )
    return ApiResponse.created({'item': item.to_dict()})


@sync_bp.route('/sync/process', methods=['POST'])
@require_company
def process_queue():
    """
    Drain the pending queue

    Returns:
        {success, processed, failed}; 500 only when the queue could not be read
    """
    result = SyncQueueService.process_queue()
    return jsonify(result), 200 if result['success'] else 500


@sync_bp.route('/sync/status', methods=['GET'])
@require_company
def queue_status():
    return success_response(SyncQueueService.get_status(g.company_id))


@sync_bp.route('/sync/queue/<int:item_id>/requeue', methods=['POST'])
@require_company
def requeue_item(item_id):
    """
    Retry a failed item as a new pending item
    """
    item = SyncQueueService.requeue(g.company_id, item_id)
    return ApiResponse.created({'item': item.to_dict()}, 'Sync item requeued')
