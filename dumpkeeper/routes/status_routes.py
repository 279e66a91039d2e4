"""
Status routes - read-only view of scheduled jobs and run history.
"""

from flask import Blueprint, current_app, jsonify, request

from dumpkeeper.models import BackupRun, RUN_STATUSES
from dumpkeeper.scheduler import get_scheduled_jobs, is_scheduler_running


bp = Blueprint('status', __name__, url_prefix='/api')


@bp.route('/jobs', methods=['GET'])
def list_jobs():
    """
    Get configured backup jobs with their schedule state.

    Returns:
        JSON with jobs and scheduler state
    """
    schedule = {entry['id']: entry for entry in get_scheduled_jobs()}

    jobs_data = []
    for job in current_app.config.get('BACKUP_JOBS', []):
        state = schedule.get(job.id, {})
        jobs_data.append({
            'id': job.id,
            'name': job.name,
            'backup_folder': job.backup_folder,
            'frequency_minutes': int(job.frequency.total_seconds() // 60),
            'time_of_day': job.time_of_day.strftime('%H:%M'),
            'retention': {
                'keep_most_recent': job.keep_most_recent,
                'keep_days': job.keep_days,
                'keep_weeks': job.keep_weeks,
                'keep_months': job.keep_months
            },
            'next_run': state.get('next_run'),
            'running': state.get('running', False)
        })

    return jsonify({
        'scheduler_running': is_scheduler_running(),
        'jobs': jobs_data
    })


@bp.route('/history', methods=['GET'])
def list_history():
    """
    Get backup run history with filtering and pagination.

    Query params:
        - status: Filter by status (running/success/failed)
        - job_id: Filter by job ID
        - limit: Max number of records (default: 50, max: 200)
        - offset: Number of records to skip (default: 0)

    Returns:
        JSON with history records and metadata
    """
    status_filter = request.args.get('status')
    job_id_filter = request.args.get('job_id', type=int)
    limit = request.args.get('limit', 50, type=int)
    offset = request.args.get('offset', 0, type=int)

    # Enforce limits
    if limit > 200:
        limit = 200
    if limit < 1:
        limit = 1
    if offset < 0:
        offset = 0

    query = BackupRun.query

    if status_filter:
        if status_filter not in RUN_STATUSES:
            return jsonify({'error': 'Invalid status filter'}), 400
        query = query.filter(BackupRun.status == status_filter)

    if job_id_filter:
        query = query.filter(BackupRun.job_id == job_id_filter)

    total_count = query.count()

    runs = query.order_by(
        BackupRun.started_at.desc(), BackupRun.id.desc()
    ).limit(limit).offset(offset).all()

    return jsonify({
        'history': [run.to_dict() for run in runs],
        'total': total_count,
        'limit': limit,
        'offset': offset
    })
