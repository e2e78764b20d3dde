"""
Status-change automations

Organizations author rules under ``settings['automations']['statusChanges']``:

    [{"id": "r1", "name": "Notify on done", "enabled": true, "toStatus": "done",
      "actions": [{"type": "trigger_webhook", "params": {"url": "..."}}]}]

When a job changes status, every enabled rule whose target status matches
runs its enabled actions. Each action is isolated: one failing action is
logged and the rest still run.
"""
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

import requests

from .normalization import normalize_key, to_title

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'X-Signature'

PLACEHOLDER_ACTIONS = frozenset({
    'apply_preset_tasks',
    'add_to_po',
    'outsource_garments',
    'send_to_schedule',
    'request_artwork_approval',
    'request_payment',
    'notify_internal',
})


def sign_payload(body: bytes, secret: str) -> str:
    """HMAC-SHA256 hex digest of a request body"""
    return hmac.new(secret.encode('utf-8'), body, hashlib.sha256).hexdigest()


class AutomationCallbacks:
    """
    Side-effect channel for automation actions

    The default implementation logs notifications, emails and tasks, and
    delivers webhooks over HTTP. Subclass to route them elsewhere.
    """

    def __init__(self, webhook_timeout: int = 10, session: Optional[requests.Session] = None):
        self.webhook_timeout = webhook_timeout
        self.session = session or requests.Session()

    def notify(self, title: str, description: Optional[str] = None) -> None:
        logger.info(f"[automation] {title}: {description or ''}")

    def send_email(self, **options) -> None:
        logger.info(f"[automation] email to {options.get('to') or 'customer'} "
                    f"(template {options.get('template') or 'default'})")

    def create_task(self, task: Dict[str, Any]) -> None:
        logger.info(f"[automation] task created: {task.get('title')}")

    def trigger_webhook(self, url: str, payload: Dict[str, Any], secret: Optional[str] = None) -> None:
        """
        POST a JSON payload, signed when a secret is available

        Raises:
            requests.RequestException: On connection errors or non-2xx responses
        """
        body = json.dumps(payload, default=str).encode('utf-8')
        headers = {'Content-Type': 'application/json'}
        if secret:
            headers[SIGNATURE_HEADER] = sign_payload(body, secret)
        response = self.session.post(url, data=body, headers=headers, timeout=self.webhook_timeout)
        response.raise_for_status()


def build_template_variables(event: Dict[str, Any], org_settings: Dict[str, Any]) -> Dict[str, Any]:
    payload = event.get('payload') or {}
    return {
        'company': {'name': (org_settings.get('company') or {}).get('name') or 'Your Company'},
        'job': payload.get('job'),
        'customer': payload.get('customer'),
        'event': event,
    }


def _execute_action(action: Dict[str, Any], event: Dict[str, Any],
                    callbacks: AutomationCallbacks, org_settings: Dict[str, Any]) -> None:
    action_type = action.get('type')
    params = action.get('params') or {}

    if action_type == 'send_email':
        callbacks.notify('Send Email', f"To: {params.get('to') or 'customer'} - "
                                       f"Template: {params.get('template') or 'default'}")
        callbacks.send_email(
            to=params.get('to'),
            template=params.get('template'),
            subject=params.get('subject'),
            body=params.get('body'),
            variables=build_template_variables(event, org_settings),
        )

    elif action_type == 'create_notification':
        callbacks.notify('Notification', params.get('message') or f"Status changed to {event.get('toStatus')}")

    elif action_type == 'trigger_webhook':
        url = params.get('url')
        callbacks.notify('Trigger Webhook', url)
        if url:
            payload = dict(params.get('payload') or {})
            payload['event'] = event
            secret = params.get('secret') or (org_settings.get('automations') or {}).get('webhookSecret')
            callbacks.trigger_webhook(url, payload, secret=str(secret) if secret else None)

    elif action_type == 'create_tasks':
        title = params.get('title') or f"Follow-up for {event.get('entityType')} {event.get('entityId')}"
        callbacks.create_task({'title': title, 'status': 'open'})
        callbacks.notify('Create Task', params.get('title') or 'Follow-up')

    elif action_type in PLACEHOLDER_ACTIONS:
        callbacks.notify(to_title(action_type), f"For {event.get('entityType')} {event.get('entityId') or ''}")

    else:
        callbacks.notify('Unknown action', str(action_type))


def run_status_change_automations(org_settings: Optional[Dict[str, Any]], event: Dict[str, Any],
                                  callbacks: Optional[AutomationCallbacks] = None) -> int:
    """
    Run the status-change rules matching an event

    Args:
        org_settings: Organization settings document
        event: {entityType, entityId, toStatus, fromStatus, payload}
        callbacks: Side-effect channel (defaults to AutomationCallbacks())

    Returns:
        int: Number of actions executed without error
    """
    org_settings = org_settings or {}
    callbacks = callbacks or AutomationCallbacks()
    rules = (org_settings.get('automations') or {}).get('statusChanges') or []
    if not isinstance(rules, list) or not rules:
        logger.debug("No status-change automations configured")
        return 0

    target = normalize_key(event.get('toStatus'))
    matching = [r for r in rules if r.get('enabled') and normalize_key(r.get('toStatus')) == target]
    logger.debug(f"{len(matching)} automation rule(s) match status {target!r}")

    executed = 0
    for rule in matching:
        for action in rule.get('actions') or []:
            if action.get('enabled') is False:
                continue
            try:
                _execute_action(action, event, callbacks, org_settings)
                executed += 1
            except Exception as e:
                logger.warning(
                    f"Automation action {action.get('type')} in rule {rule.get('id')} failed: {e}",
                    exc_info=True
                )
    return executed
