"""
Audit models
Append-only trail of production job mutations
"""
import json
from datetime import datetime


def create_audit_models(db):
    """Factory function to create audit models with db instance"""

    class JobAuditEvent(db.Model):
        """
        One recorded production job action

        Actions: schedule, unschedule, advance_stage, start, mark_done,
        block, unblock, reopen. details_json holds the action payload
        (fromStage/toStage, window, equipment).
        """
        __tablename__ = 'production_job_audit'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        org_id = db.Column(db.String(64), nullable=False, default='default')
        job_id = db.Column(db.String(64), nullable=False, index=True)
        action = db.Column(db.String(30), nullable=False)
        details_json = db.Column(db.Text)  # JSON string of action details
        user_id = db.Column(db.String(64))
        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

        __table_args__ = (
            db.Index('idx_job_audit_job_created', 'job_id', 'created_at'),
        )

        @property
        def details(self):
            return json.loads(self.details_json) if self.details_json else {}

        def to_dict(self):
            return {
                'id': self.id,
                'job_id': self.job_id,
                'action': self.action,
                'details': self.details,
                'user_id': self.user_id,
                'created_at': self.created_at.isoformat() if self.created_at else None,
            }

        def __repr__(self):
            return f'<JobAuditEvent {self.job_id} {self.action}>'

    return JobAuditEvent
