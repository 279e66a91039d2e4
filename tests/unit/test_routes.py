"""
Unit tests for status routes (dumpkeeper/routes/status_routes.py).
"""

from datetime import datetime, timedelta
from unittest.mock import patch

from dumpkeeper.models import BackupRun


def add_runs(db, count, job_id=1, status='success', start=datetime(2024, 1, 1, 2, 0)):
    for i in range(count):
        when = start + timedelta(days=i)
        db.session.add(BackupRun(
            job_id=job_id,
            job_name=f'job_{job_id}',
            status=status,
            scheduled_for=when,
            started_at=when
        ))
    db.session.commit()


class TestHealth:
    """Test health endpoint."""

    def test_health(self, client):
        response = client.get('/health')

        assert response.status_code == 200
        assert response.get_json() == {'status': 'healthy'}


class TestJobsEndpoint:
    """Test /api/jobs."""

    def test_lists_configured_jobs(self, client):
        response = client.get('/api/jobs')

        assert response.status_code == 200
        data = response.get_json()
        assert data['scheduler_running'] is False
        assert len(data['jobs']) == 1

        job = data['jobs'][0]
        assert job['id'] == 1
        assert job['name'] == 'test_db'
        assert job['frequency_minutes'] == 1440
        assert job['time_of_day'] == '02:00'
        assert job['retention'] == {
            'keep_most_recent': 2,
            'keep_days': 0,
            'keep_weeks': 0,
            'keep_months': 0
        }
        assert job['next_run'] is None
        assert job['running'] is False

    @patch('dumpkeeper.routes.status_routes.is_scheduler_running', return_value=True)
    @patch('dumpkeeper.routes.status_routes.get_scheduled_jobs')
    def test_includes_schedule_state(self, mock_jobs, mock_running, client):
        mock_jobs.return_value = [
            {'id': 1, 'name': 'test_db', 'next_run': '2024-01-16T02:00:00', 'running': True}
        ]

        data = client.get('/api/jobs').get_json()

        assert data['scheduler_running'] is True
        assert data['jobs'][0]['next_run'] == '2024-01-16T02:00:00'
        assert data['jobs'][0]['running'] is True


class TestHistoryEndpoint:
    """Test /api/history."""

    def test_empty(self, client, db):
        data = client.get('/api/history').get_json()

        assert data == {'history': [], 'total': 0, 'limit': 50, 'offset': 0}

    def test_newest_first(self, client, db):
        add_runs(db, 3)

        data = client.get('/api/history').get_json()

        assert data['total'] == 3
        assert [run['scheduled_for'] for run in data['history']] == [
            '2024-01-03T02:00:00', '2024-01-02T02:00:00', '2024-01-01T02:00:00'
        ]

    def test_filter_by_status_and_job(self, client, db):
        add_runs(db, 2, job_id=1, status='success')
        add_runs(db, 1, job_id=1, status='failed')
        add_runs(db, 4, job_id=2, status='success')

        failed = client.get('/api/history?status=failed').get_json()
        job_two = client.get('/api/history?job_id=2').get_json()
        job_one_ok = client.get('/api/history?job_id=1&status=success').get_json()

        assert failed['total'] == 1
        assert job_two['total'] == 4
        assert job_one_ok['total'] == 2

    def test_invalid_status(self, client, db):
        response = client.get('/api/history?status=pending')

        assert response.status_code == 400
        assert response.get_json()['error'] == 'Invalid status filter'

    def test_pagination(self, client, db):
        add_runs(db, 5)

        data = client.get('/api/history?limit=2&offset=1').get_json()

        assert data['total'] == 5
        assert data['limit'] == 2
        assert data['offset'] == 1
        assert [run['scheduled_for'] for run in data['history']] == [
            '2024-01-04T02:00:00', '2024-01-03T02:00:00'
        ]

    def test_limits_are_clamped(self, client, db):
        data = client.get('/api/history?limit=500&offset=-3').get_json()

        assert data['limit'] == 200
        assert data['offset'] == 0
