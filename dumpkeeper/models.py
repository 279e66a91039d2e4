from datetime import datetime
from dumpkeeper import db


RUN_STATUSES = ('running', 'success', 'failed')


class BackupRun(db.Model):
    """Backup run history and logs"""
    __tablename__ = 'backup_runs'

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, nullable=False, index=True)  # 1-based id from the settings file
    job_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(20), nullable=False)  # running, success, failed
    scheduled_for = db.Column(db.DateTime, nullable=False)
    started_at = db.Column(db.DateTime, default=datetime.now, nullable=False)
    completed_at = db.Column(db.DateTime)
    exit_code = db.Column(db.Integer)
    file_name = db.Column(db.String(255))
    file_size_bytes = db.Column(db.BigInteger)
    same_as_previous = db.Column(db.Boolean, default=False, nullable=False)
    deleted_count = db.Column(db.Integer, default=0, nullable=False)
    error_message = db.Column(db.Text)
    logs = db.Column(db.Text)  # Detailed execution logs

    def to_dict(self):
        return {
            'id': self.id,
            'job_id': self.job_id,
            'job_name': self.job_name,
            'status': self.status,
            'scheduled_for': self.scheduled_for.isoformat(),
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'exit_code': self.exit_code,
            'file_name': self.file_name,
            'file_size_bytes': self.file_size_bytes,
            'same_as_previous': self.same_as_previous,
            'deleted_count': self.deleted_count,
            'error_message': self.error_message,
        }

    def __repr__(self):
        return f'<BackupRun job_id={self.job_id} status={self.status}>'
