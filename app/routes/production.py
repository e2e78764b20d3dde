"""
Production Scheduling API Routes
Lanes, hour slots, job transactions and the auto-scheduler trigger
"""
from datetime import datetime, timezone
from flask import Blueprint, request, jsonify, current_app

from app.error_handlers import (
    handle_errors,
    ValidationException,
    AuthorizationException,
    ResourceNotFoundException,
)
from app.models import get_models
from app.services.automation import AutomationCallbacks
from app.services.effects import EffectRunner
from app.services.job_store import SqlAlchemyJobStore, SqlAlchemyAuditRecorder
from app.services.job_types import Actor, Lane, SchedulingContext, SchedulingIntent
from app.services.lane_resolver import resolve_lanes
from app.services.normalization import normalize_key
from app.services.slot_filter import (
    VIRTUAL_UNSCHEDULED,
    build_hour_grid,
    lane_utilization,
    slots_for_lane,
)

production_bp = Blueprint('production', __name__, url_prefix='/api/production')


def _actor():
    return Actor(
        user_id=request.headers.get('X-User-Id'),
        role=request.headers.get('X-User-Role'),
    )


def _org_id():
    return request.headers.get('X-Org-Id') or current_app.config['DEFAULT_ORG_ID']


def _store(org_id):
    db = current_app.extensions['sqlalchemy']
    return SqlAlchemyJobStore(db.session, get_models(), org_id=org_id)


def _engine():
    return current_app.extensions['production_engine']


def _build_context(org_id, actor, jobs=None, selected_stage=None):
    """
    Working set for one engine call, wired to this request's store and audit trail
    """
    db = current_app.extensions['sqlalchemy']
    models = get_models()
    store = SqlAlchemyJobStore(db.session, models, org_id=org_id)
    runner = EffectRunner(
        store=store,
        audit=SqlAlchemyAuditRecorder(db.session, models, org_id, actor.user_id),
        callbacks=AutomationCallbacks(webhook_timeout=current_app.config['WEBHOOK_TIMEOUT']),
    )
    return SchedulingContext(
        jobs=jobs if jobs is not None else store.fetch_jobs(),
        org=store.fetch_org_config(org_id),
        actor=actor,
        selected_stage=normalize_key(selected_stage) or None,
        effect_runner=runner,
    )


def _require_args(*names):
    values = []
    for name in names:
        value = request.args.get(name)
        if not value:
            raise ValidationException(f'Query parameter {name} is required')
        values.append(value)
    return values


def _parse_datetime(value, field_name):
    """Parse an ISO-8601 timestamp into a naive datetime (UTC when an offset is given)"""
    if not value:
        raise ValidationException(f'{field_name} is required')
    try:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationException(f'Invalid {field_name}. Use ISO-8601 (YYYY-MM-DDTHH:MM)')
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_date(value):
    if not value:
        return datetime.now().date()
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationException('Invalid date format. Use YYYY-MM-DD')


def _respond(outcome):
    """JSON body for an engine outcome; None means the intent was a duplicate"""
    if outcome is None:
        return jsonify({'success': True, 'skipped': True,
                        'message': 'Another operation on this job is in progress'})
    return jsonify(outcome.to_dict())


@production_bp.route('/lanes', methods=['GET'])
@handle_errors
def get_lanes():
    """Equipment lanes for a decoration method stage"""
    method, stage = _require_args('method', 'stage')
    org_id = _org_id()
    org = _store(org_id).fetch_org_config(org_id)

    lanes = resolve_lanes(method, stage, org.equipment)
    return jsonify({
        'success': True,
        'method': method,
        'stage': normalize_key(stage),
        'lanes': [lane.to_dict() for lane in lanes],
    })


@production_bp.route('/lanes/<lane_id>/slots', methods=['GET'])
@handle_errors
def get_lane_slots(lane_id):
    """
    Jobs bucketed by hour slot on one lane for a day

    The 'unscheduled' lane id lists the stage's unscheduled jobs in the
    first slot.
    """
    method, stage = _require_args('method', 'stage')
    day = _parse_date(request.args.get('date'))
    org_id = _org_id()
    store = _store(org_id)
    org = store.fetch_org_config(org_id)
    hour_grid = build_hour_grid(current_app.config['SCHEDULER_DAY_START_HOUR'],
                                current_app.config['SCHEDULER_DAY_END_HOUR'])
    jobs = store.fetch_jobs(method, stage)

    if lane_id == VIRTUAL_UNSCHEDULED:
        lane = Lane(id=VIRTUAL_UNSCHEDULED, name='Unscheduled', source='virtual')
        buckets = slots_for_lane(lane, jobs, day, hour_grid, stage=normalize_key(stage),
                                 virtual_mode=VIRTUAL_UNSCHEDULED)
    else:
        lane = next((l for l in resolve_lanes(method, stage, org.equipment) if l.id == lane_id), None)
        if lane is None:
            raise ResourceNotFoundException(f'Lane {lane_id} not found for {method}/{stage}')
        buckets = slots_for_lane(lane, jobs, day, hour_grid, stage=normalize_key(stage))

    return jsonify({
        'success': True,
        'lane': lane.to_dict(),
        'date': day.isoformat(),
        'utilization': lane_utilization(lane, jobs, hour_grid, day),
        'slots': [
            {
                'hour': slot.hour,
                'label': slot.label,
                'jobs': [job.to_dict() for job in buckets[slot.hour]],
            }
            for slot in hour_grid
        ],
    })


@production_bp.route('/jobs/<job_id>/schedule', methods=['POST'])
@handle_errors
def schedule_job(job_id):
    """Place a job on a lane (drag-drop target)"""
    data = request.get_json(silent=True) or {}
    equipment_id = data.get('equipment_id')
    if not equipment_id:
        raise ValidationException('equipment_id is required')

    start_time = _parse_datetime(data.get('start_time'), 'start_time')
    end_time = _parse_datetime(data['end_time'], 'end_time') if data.get('end_time') else None
    stage = normalize_key(data.get('stage')) or None

    ctx = _build_context(_org_id(), _actor(), selected_stage=stage)
    intent = SchedulingIntent(
        job_id=job_id,
        equipment_id=equipment_id,
        start_time=start_time,
        end_time=end_time,
        stage=stage,
    )
    return _respond(_engine().schedule(intent, ctx))


@production_bp.route('/jobs/<job_id>/unschedule', methods=['POST'])
@handle_errors
def unschedule_job(job_id):
    data = request.get_json(silent=True) or {}
    ctx = _build_context(_org_id(), _actor(), selected_stage=data.get('stage'))
    return _respond(_engine().unschedule(job_id, ctx))


@production_bp.route('/jobs/<job_id>/advance', methods=['POST'])
@handle_errors
def advance_job(job_id):
    ctx = _build_context(_org_id(), _actor())
    return _respond(_engine().advance_stage(job_id, ctx))


@production_bp.route('/jobs/<job_id>/start', methods=['POST'])
@handle_errors
def start_job(job_id):
    ctx = _build_context(_org_id(), _actor())
    return _respond(_engine().start(job_id, ctx))


@production_bp.route('/jobs/<job_id>/done', methods=['POST'])
@handle_errors
def mark_job_done(job_id):
    ctx = _build_context(_org_id(), _actor())
    return _respond(_engine().mark_done(job_id, ctx))


@production_bp.route('/jobs/<job_id>/block', methods=['POST'])
@handle_errors
def block_job(job_id):
    """Block or unblock a job; without a 'block' flag the state is toggled"""
    data = request.get_json(silent=True) or {}
    block = data.get('block')
    if block is not None and not isinstance(block, bool):
        raise ValidationException('block must be true or false')

    ctx = _build_context(_org_id(), _actor())
    return _respond(_engine().block_toggle(job_id, ctx, block=block))


@production_bp.route('/jobs/<job_id>/reopen', methods=['POST'])
@handle_errors
def reopen_job(job_id):
    ctx = _build_context(_org_id(), _actor())
    return _respond(_engine().reopen(job_id, ctx))


@production_bp.route('/auto-schedule', methods=['POST'])
@handle_errors
def auto_schedule():
    """
    Auto-schedule one method stage for a day

    Request body:
        method: Decoration method
        stage: Stage id
        date: YYYY-MM-DD (default: today)

    Returns:
        Placed jobs, per-job rejections, or the reason the run was skipped
    """
    actor = _actor()
    if not actor.is_manager:
        raise AuthorizationException('Auto-scheduling requires a manager role')

    data = request.get_json(silent=True) or {}
    method = data.get('method')
    stage = data.get('stage')
    if not method or not stage:
        raise ValidationException('method and stage are required')
    day = _parse_date(data.get('date'))

    org_id = _org_id()
    ctx = _build_context(org_id, actor, selected_stage=stage)
    result = current_app.extensions['auto_scheduler'].run(method, stage, day, org_id, ctx)

    current_app.logger.info(
        f"Auto-schedule {method}/{stage} {day.isoformat()} by {actor.user_id}: "
        f"{len(result.placed)} placed, skipped={result.skipped_reason}"
    )
    return jsonify(result.to_dict())
