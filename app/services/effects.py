"""
Effect execution

The scheduling engine decides and mutates its working copy synchronously,
then hands back a list of Effect values. EffectRunner performs them against
the persistence, audit, analytics and automation collaborators. A failing
effect is logged and never re-raised into the decision path.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from app.error_handlers.exceptions import PersistenceFailedException
from .automation import AutomationCallbacks, run_status_change_automations
from .job_types import Effect, EffectKind

logger = logging.getLogger(__name__)
analytics_logger = logging.getLogger('app.analytics')


def log_analytics_event(event: str, properties: Dict[str, Any]) -> None:
    analytics_logger.info(f"{event} {properties}")


class EffectRunner:
    """
    Executes engine effects, one independent attempt each

    Args:
        store: JobStore (move_job, unschedule_stage, update_status)
        audit: AuditRecorder (record_event)
        status_hook: Callable(org_settings, event, callbacks)
        callbacks: AutomationCallbacks passed to the status hook
        analytics: Callable(event_name, properties)
    """

    def __init__(self, store=None, audit=None,
                 status_hook: Optional[Callable] = run_status_change_automations,
                 callbacks: Optional[AutomationCallbacks] = None,
                 analytics: Optional[Callable[[str, Dict[str, Any]], None]] = log_analytics_event):
        self.store = store
        self.audit = audit
        self.status_hook = status_hook
        self.callbacks = callbacks
        self.analytics = analytics

    def run(self, effects: Iterable[Effect], org_settings: Optional[Dict[str, Any]] = None) -> List[PersistenceFailedException]:
        """
        Execute effects in order

        Returns:
            List of failures (already logged); empty when everything succeeded
        """
        failures = []
        for effect in effects:
            try:
                self._dispatch(effect, org_settings or {})
            except Exception as e:
                job_id = effect.payload.get('job_id') or effect.payload.get('entityId')
                failure = PersistenceFailedException(
                    f"{effect.kind.value} failed for job {job_id}: {e}",
                    details={'effect': effect.kind.value, 'job_id': job_id}
                )
                logger.error(str(failure), exc_info=True)
                failures.append(failure)
        return failures

    def _dispatch(self, effect: Effect, org_settings: Dict[str, Any]) -> None:
        payload = effect.payload

        if effect.kind == EffectKind.MOVE_JOB:
            if self.store is not None:
                self.store.move_job(payload['job_id'], payload['stage'], payload['start'],
                                    payload['end'], payload['equipment_id'])

        elif effect.kind == EffectKind.UNSCHEDULE_STAGE:
            if self.store is not None:
                self.store.unschedule_stage(payload['job_id'], payload['stage'])

        elif effect.kind == EffectKind.UPDATE_STATUS:
            if self.store is not None:
                self.store.update_status(payload['job_id'], payload['status'])

        elif effect.kind == EffectKind.AUDIT:
            if self.audit is not None:
                self.audit.record_event(payload['job_id'], payload['action'], payload.get('details') or {})

        elif effect.kind == EffectKind.ANALYTICS:
            if self.analytics is not None:
                self.analytics(payload['event'], payload.get('properties') or {})

        elif effect.kind == EffectKind.STATUS_CHANGE:
            if self.status_hook is not None:
                self.status_hook(org_settings, payload, self.callbacks)

        else:
            logger.warning(f"Unhandled effect kind {effect.kind}")
