"""
Webhook Dispatcher

Flask app receiving Tracker webhooks and Registry change notifications and
routing them to the sync engine. Holds no data of its own.

Routes:
    POST /tracker/<kind>/assignee    assignee added/removed (rfq, datasheet)
    POST /tracker/<kind>/reviewer    reviewer custom field changed
    POST /tracker/<kind>/delete      task deleted (rfq, datasheet, order)
    POST /tracker/order              order status changed
    GET|POST /registry/<kind>        subscription handshake / change notification
    POST /reconcile/<kind>           operator-initiated reconciliation
    GET  /health
"""

import hmac
import logging
from functools import wraps
from typing import Optional

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request

from .config import config
from .exceptions import AuthenticityFailure, ValidationFailure
from .models import RecordKind
from .signature import SIGNATURE_HEADER, CapturedRequest, handshake_response, verify_request
from .translators import FIELD_SYNC_KINDS

logger = logging.getLogger(__name__)

tracker_bp = Blueprint('tracker', __name__, url_prefix='/tracker')
registry_bp = Blueprint('registry', __name__, url_prefix='/registry')
ops_bp = Blueprint('ops', __name__)


def get_engine():
    return current_app.config['SYNC_ENGINE']


def get_settings():
    return current_app.config['SYNC_SETTINGS']


def capture_request() -> CapturedRequest:
    """Capture the exact body bytes before any JSON decoding."""
    raw_body = request.get_data(cache=True)
    payload = request.get_json(silent=True, force=True) if raw_body else None
    return CapturedRequest(
        raw_body=raw_body,
        payload=payload,
        signature=request.headers.get(SIGNATURE_HEADER),
    )


def event_items(captured: CapturedRequest) -> list:
    """Webhook items as a list (the Tracker sends arrays, tolerate a single object)."""
    payload = captured.payload
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        return [payload]
    return []


def resolve_kind(segment: str, allowed=tuple(RecordKind)) -> Optional[RecordKind]:
    kind = RecordKind.from_path(segment)
    return kind if kind in allowed else None


def require_api_key(f):
    """Decorator to require API key authentication for operator routes."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        api_key = get_settings().API_KEY
        # Skip auth if no API key is configured (local development)
        if not api_key:
            return f(*args, **kwargs)

        provided_key = request.headers.get('X-API-Key')
        if not provided_key or not hmac.compare_digest(provided_key.encode('utf-8'), api_key.encode('utf-8')):
            return jsonify({
                'success': False,
                'error': {
                    'code': 'UNAUTHORIZED',
                    'message': 'Invalid or missing API key'
                }
            }), 401

        return f(*args, **kwargs)
    return decorated_function


# =============================================================================
# Tracker webhooks
# =============================================================================

@tracker_bp.before_request
def verify_tracker_origin():
    """Answer the secret handshake, or reject deliveries with a bad signature."""
    captured = capture_request()
    g.captured = captured
    secret = get_settings().TRACKER_HOOK_SECRET

    if captured.is_handshake:
        if not captured.signature:
            return Response(status=400)
        logger.info("Answering Tracker webhook secret verification")
        response = Response(status=200)
        response.headers[SIGNATURE_HEADER] = handshake_response(secret, captured.signature)
        return response

    try:
        verify_request(secret, captured)
    except AuthenticityFailure as e:
        logger.warning(f"Rejected Tracker delivery to {request.path}: {e}")
        return Response(str(e) if e.status == 401 else '', status=e.status)

    return None


@tracker_bp.route('/<kind>/assignee', methods=['POST'])
@tracker_bp.route('/<kind>/reviewer', methods=['POST'])
def tracker_field_change(kind):
    record_kind = resolve_kind(kind, FIELD_SYNC_KINDS)
    if record_kind is None:
        return Response(status=404)

    counts = get_engine().handle_field_events(record_kind, event_items(g.captured))
    logger.info(f"{record_kind.value} field events: {counts}")
    return Response(status=202)


@tracker_bp.route('/<kind>/delete', methods=['POST'])
def tracker_delete(kind):
    record_kind = resolve_kind(kind)
    if record_kind is None:
        return Response(status=404)

    get_engine().handle_deletions(record_kind, event_items(g.captured))
    return Response(status=202)


@tracker_bp.route('/order', methods=['POST'])
def tracker_order():
    get_engine().handle_order_events(event_items(g.captured))
    return Response(status=202)


# =============================================================================
# Registry notifications
# =============================================================================

def check_client_state(body, expected: str) -> list:
    """
    Notifications from a Registry change notification body.

    Raises ValidationFailure unless every notification carries the shared
    client state.
    """
    notifications = body.get('value') if isinstance(body, dict) else None
    if not notifications:
        raise ValidationFailure("Notification body has no value list")

    for notification in notifications:
        state = notification.get('clientState') if isinstance(notification, dict) else None
        if not expected or not hmac.compare_digest(str(state or '').encode('utf-8'), expected.encode('utf-8')):
            raise ValidationFailure("clientState mismatch")
    return notifications


@registry_bp.route('/<kind>', methods=['GET', 'POST'])
def registry_notification(kind):
    # Subscription validation: echo the decoded token as plain text, '+' read as a space
    token = request.args.get('validationToken')
    if token is not None:
        logger.info("Answering Registry subscription validation")
        return Response(token.replace('+', ' '), status=200, mimetype='text/plain')

    record_kind = resolve_kind(kind)
    if record_kind is None:
        return Response(status=404)

    try:
        notifications = check_client_state(
            request.get_json(silent=True, force=True),
            get_settings().REGISTRY_CLIENT_STATE,
        )
    except ValidationFailure as e:
        logger.warning(f"Rejected Registry notification for {kind}: {e}")
        return Response(status=e.status)

    logger.info(f"{len(notifications)} Registry notification(s) for {record_kind.value}")
    get_engine().reconcile_in_background(record_kind, get_settings().NOTIFICATION_RECONCILE_LIMIT)
    return Response(status=202)


# =============================================================================
# Operator routes
# =============================================================================

@ops_bp.route('/reconcile/<kind>', methods=['POST'])
@require_api_key
def reconcile(kind):
    record_kind = resolve_kind(kind)
    if record_kind is None:
        return jsonify({
            'success': False,
            'error': {'code': 'NOT_FOUND', 'message': f'Unknown record kind: {kind}'}
        }), 404

    limit = request.args.get('limit', get_settings().RECONCILE_DAILY_LIMIT, type=int)
    result = get_engine().reconcile(record_kind, limit)

    return jsonify({
        'success': not result.failed,
        'result': result.to_dict(),
    })


@ops_bp.route('/health')
def health_check():
    """Basic health check endpoint."""
    engine = get_engine()
    return jsonify({
        'status': 'healthy' if engine.store.is_open else 'degraded',
        'service': 'record-sync'
    })


def create_app(engine=None, settings=None) -> Flask:
    """
    Build the webhook app.

    Without an engine, the process-wide store is opened and wired to the
    module-level Tracker/Registry clients.
    """
    settings = settings or config

    if engine is None:
        from .db import db
        from .registry_client import registry_client
        from .sync_engine import SyncEngine
        from .tracker_client import tracker_client

        engine = SyncEngine(db.open(), tracker_client, registry_client, settings)

    app = Flask(__name__)
    app.config['SYNC_ENGINE'] = engine
    app.config['SYNC_SETTINGS'] = settings

    app.register_blueprint(tracker_bp)
    app.register_blueprint(registry_bp)
    app.register_blueprint(ops_bp)

    return app
