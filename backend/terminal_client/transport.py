"""
Maps queued actions onto the backend's REST endpoints.
"""
import logging

import requests

from .actions import ActionType, QueuedAction

logger = logging.getLogger(__name__)


class TransportError(Exception):
    """The request may succeed later: network failure, 5xx, or a retryable conflict."""


class RejectedActionError(Exception):
    """The backend refused the action itself. Replaying the same payload cannot succeed."""

    def __init__(self, message, status_code=None, body=None):
        self.status_code = status_code
        self.body = body or {}
        super().__init__(message)


BILL_ACTIONS = {
    ActionType.ADD_BILL_ITEM: 'addItem',
    ActionType.REMOVE_BILL_ITEM: 'removeItem',
    ActionType.UPDATE_BILL_DISCOUNT: 'updateDiscount',
    ActionType.UPDATE_BILL_SERVICE_CHARGE: 'updateServiceCharge',
    ActionType.CLOSE_BILL: 'close',
}


class ApiTransport:

    def __init__(self, base_url, access_token='', session=None, timeout=10.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        if access_token:
            self.session.headers['Authorization'] = f"Bearer {access_token}"

    def request_for(self, action: QueuedAction):
        """(method, path, json body, extra headers) for one action."""
        payload = dict(action.payload)
        headers = {}

        if action.type == ActionType.CREATE_ORDER:
            key = payload.pop('idempotency_key', None)
            if key:
                headers['Idempotency-Key'] = key
            token = payload.pop('token', None)
            if token:
                return 'POST', f"/api/orders/public/{token}/", payload, headers
            return 'POST', '/api/orders/', payload, headers

        if action.type == ActionType.UPDATE_ORDER_STATUS:
            order_id = payload['order_id']
            return 'POST', f"/api/orders/{order_id}/transition/", {'status': payload['status']}, headers

        if action.type == ActionType.CREATE_BILL:
            if payload.get('order_id'):
                return 'POST', '/api/bills/from-order/', {'order_id': payload['order_id']}, headers
            return 'POST', '/api/bills/', payload, headers

        if action.type == ActionType.ADD_PAYMENT:
            key = payload.pop('idempotency_key', None)
            if key:
                headers['Idempotency-Key'] = key
            return 'POST', '/api/payments/', payload, headers

        bill_id = payload.pop('bill_id')
        key = payload.pop('idempotency_key', None)
        if key:
            headers['Idempotency-Key'] = key
        body = {'action': BILL_ACTIONS[action.type]}
        if action.type == ActionType.ADD_BILL_ITEM:
            body['item'] = payload
        else:
            body.update(payload)
        return 'PATCH', f"/api/bills/{bill_id}/", body, headers

    def execute(self, action: QueuedAction) -> dict:
        method, path, body, headers = self.request_for(action)
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, json=body, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if response.ok:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                # Captive portals and misrouted proxies answer 200 with HTML
                raise TransportError(f"{method} {path} returned a non-JSON {response.status_code} body") from e

        try:
            error_body = response.json()
        except ValueError:
            error_body = {}
        message = error_body.get('error') or f"HTTP {response.status_code}"

        status_code = response.status_code
        if status_code >= 500 or status_code in (401, 408, 429) or error_body.get('retryable'):
            logger.warning(f"{action.type.value} {action.id}: retryable {status_code} ({message})")
            raise TransportError(f"{status_code}: {message}")

        logger.warning(f"{action.type.value} {action.id}: rejected with {status_code} ({message})")
        raise RejectedActionError(f"{status_code}: {message}", status_code=status_code, body=error_body)
