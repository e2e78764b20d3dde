"""
Production job model
Durable record of a decoration job and its per-stage schedule
"""
from datetime import datetime


def create_production_job_model(db):
    """Factory function to create ProductionJob model with db instance"""

    class ProductionJob(db.Model):
        """
        A unit of decoration work moving through its method's stages

        The current-stage window lives in scheduled_start/scheduled_end.
        stage_schedules keeps every stage's placement keyed by stage id so
        unscheduling one stage leaves the others intact.
        """
        __tablename__ = 'production_jobs'

        id = db.Column(db.String(64), primary_key=True)
        org_id = db.Column(db.String(64), nullable=False, default='default', index=True)
        job_number = db.Column(db.String(50))
        customer_name = db.Column(db.String(200))
        description = db.Column(db.Text)

        decoration_method = db.Column(db.String(50), nullable=False)
        current_stage = db.Column(db.String(50))
        status = db.Column(db.String(20), nullable=False, default='unscheduled')
        priority = db.Column(db.String(10), nullable=False, default='medium')

        total_quantity = db.Column(db.Integer, nullable=False, default=0)
        estimated_hours = db.Column(db.Float, default=0.0)
        stage_durations = db.Column(db.JSON, default=dict)  # stage id -> hours
        due_date = db.Column(db.DateTime)
        material_status = db.Column(db.String(20))
        assigned_user_id = db.Column(db.String(64))
        predecessor_ids = db.Column(db.JSON, default=list)

        equipment_id = db.Column(db.String(64), index=True)
        scheduled_start = db.Column(db.DateTime)
        scheduled_end = db.Column(db.DateTime)
        stage_schedules = db.Column(db.JSON, default=dict)

        created_at = db.Column(db.DateTime, default=datetime.utcnow)
        updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

        __table_args__ = (
            db.Index('idx_production_jobs_equipment_start', 'equipment_id', 'scheduled_start'),
        )

        def to_job(self):
            """Convert to the engine's Job working copy"""
            from app.services.job_types import Job, JobStatus

            return Job(
                id=self.id,
                job_number=self.job_number,
                customer_name=self.customer_name,
                description=self.description,
                decoration_method=self.decoration_method,
                current_stage=self.current_stage,
                status=JobStatus.normalize(self.status),
                total_quantity=self.total_quantity or 0,
                stage_durations=dict(self.stage_durations or {}),
                estimated_hours=self.estimated_hours or 0.0,
                due_date=self.due_date,
                priority=self.priority or 'medium',
                equipment_id=self.equipment_id,
                scheduled_start=self.scheduled_start,
                scheduled_end=self.scheduled_end,
                material_status=self.material_status,
                assigned_user_id=self.assigned_user_id,
                predecessor_ids=list(self.predecessor_ids or []),
            )

        def __repr__(self):
            return f'<ProductionJob {self.id}: {self.decoration_method}/{self.current_stage} {self.status}>'

    return ProductionJob
