"""
Job persistence and audit adapters

JobStore and AuditRecorder are the contracts the effect runner writes
through. The SQLAlchemy implementations below persist to the
production_jobs, production_job_audit and organization_settings tables.
"""
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.error_handlers.exceptions import DatabaseException, JobNotFoundException
from .job_types import Job, JobStatus, OrgConfig
from .normalization import normalize_key, normalize_method_id
from .production_config import build_org_config

logger = logging.getLogger(__name__)


class JobStore(ABC):
    """Durable job storage consumed by the scheduling engine"""

    @abstractmethod
    def move_job(self, job_id: str, stage: Optional[str], start: Optional[datetime],
                 end: Optional[datetime], equipment_id: Optional[str]) -> None:
        """Set a job's stage and its window on that stage (None window = unscheduled)"""

    @abstractmethod
    def unschedule_stage(self, job_id: str, stage: Optional[str]) -> None:
        """Clear one stage's placement"""

    @abstractmethod
    def update_status(self, job_id: str, status: str) -> None:
        """Persist a status transition"""

    @abstractmethod
    def fetch_jobs(self, method: Optional[str] = None, stage: Optional[str] = None) -> List[Job]:
        """Current jobs, optionally filtered by method and stage"""

    @abstractmethod
    def fetch_org_config(self, org_id: Optional[str] = None) -> OrgConfig:
        """Equipment, rules and methods of an organization"""


class AuditRecorder(ABC):
    """Append-only audit trail"""

    @abstractmethod
    def record_event(self, job_id: str, action: str, details: Dict[str, Any]) -> None:
        """Record one job action"""


class SqlAlchemyJobStore(JobStore):
    """
    JobStore backed by the ProductionJob model

    Args:
        db_session: SQLAlchemy database session
        models: Dictionary of model classes from the model registry
        org_id: Organization whose jobs this store reads and writes
    """

    def __init__(self, db_session: Session, models: dict, org_id: str = 'default'):
        self.db = db_session
        self.ProductionJob = models['ProductionJob']
        self.OrganizationSetting = models['OrganizationSetting']
        self.org_id = org_id

    def _row(self, job_id: str):
        row = self.db.query(self.ProductionJob).filter_by(id=job_id, org_id=self.org_id).first()
        if row is None:
            raise JobNotFoundException(job_id)
        return row

    def _commit(self, operation: str, job_id: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException(f'{operation} failed for job {job_id}: {str(e)}') from e

    def move_job(self, job_id, stage, start, end, equipment_id):
        row = self._row(job_id)
        schedules = dict(row.stage_schedules or {})
        if start is not None:
            schedules[stage] = {
                'start': start.isoformat(),
                'end': end.isoformat() if end else None,
                'equipment_id': equipment_id,
            }
            row.status = JobStatus.SCHEDULED.value
        else:
            schedules.pop(stage, None)
            row.status = JobStatus.UNSCHEDULED.value

        row.current_stage = stage
        row.equipment_id = equipment_id
        row.scheduled_start = start
        row.scheduled_end = end
        row.stage_schedules = schedules
        self._commit('move_job', job_id)

    def unschedule_stage(self, job_id, stage):
        row = self._row(job_id)
        schedules = dict(row.stage_schedules or {})
        schedules.pop(stage, None)
        row.stage_schedules = schedules
        if stage is None or stage == row.current_stage:
            row.equipment_id = None
            row.scheduled_start = None
            row.scheduled_end = None
            row.status = JobStatus.UNSCHEDULED.value
        self._commit('unschedule_stage', job_id)

    def update_status(self, job_id, status):
        row = self._row(job_id)
        row.status = JobStatus.normalize(status).value
        self._commit('update_status', job_id)

    def fetch_jobs(self, method=None, stage=None):
        query = self.db.query(self.ProductionJob).filter_by(org_id=self.org_id)
        if stage:
            query = query.filter(self.ProductionJob.current_stage == normalize_key(stage))
        jobs = [row.to_job() for row in query.order_by(self.ProductionJob.created_at).all()]
        if method:
            method_id = normalize_method_id(method)
            jobs = [j for j in jobs if normalize_method_id(j.decoration_method) == method_id]
        return jobs

    def fetch_org_config(self, org_id=None):
        org_id = org_id or self.org_id
        return build_org_config(org_id, self.OrganizationSetting.get_org_settings(org_id))

    def org_ids(self) -> List[str]:
        """Organizations that have jobs or settings"""
        job_orgs = {row[0] for row in self.db.query(self.ProductionJob.org_id).distinct().all()}
        return sorted(job_orgs | set(self.OrganizationSetting.org_ids()))


class SqlAlchemyAuditRecorder(AuditRecorder):
    """AuditRecorder backed by the JobAuditEvent model"""

    def __init__(self, db_session: Session, models: dict, org_id: str = 'default',
                 user_id: Optional[str] = None):
        self.db = db_session
        self.JobAuditEvent = models['JobAuditEvent']
        self.org_id = org_id
        self.user_id = user_id

    def record_event(self, job_id, action, details):
        event = self.JobAuditEvent(
            org_id=self.org_id,
            job_id=job_id,
            action=action,
            details_json=json.dumps(details or {}, default=str),
            user_id=self.user_id,
        )
        self.db.add(event)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException(f'Audit write failed for job {job_id}: {str(e)}') from e
        logger.debug(f"Audit {action} recorded for job {job_id}")
