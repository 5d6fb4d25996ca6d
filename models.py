from datetime import datetime, timezone

from database import db


def now_iso():
    return datetime.now(timezone.utc).isoformat()


class Workplace(db.Model):
    __tablename__ = 'workplaces'
    id = db.Column(db.String(100), primary_key=True)
    display_name = db.Column(db.String(200), nullable=False)
    updated_at = db.Column(db.String(32), nullable=False, default=now_iso)

class Task(db.Model):
    __tablename__ = 'tasks'
    # En uppgift per plats OCH skift
    id = db.Column(db.String(100), primary_key=True)
    shift = db.Column(db.String(50), primary_key=True, index=True)

    worker_name = db.Column(db.Text, nullable=True)
    worker_name_2 = db.Column(db.Text, nullable=True)
    task_description = db.Column(db.Text, nullable=True)
    project_number = db.Column(db.Text, nullable=True)
    phase = db.Column(db.Text, nullable=True)
    drawing = db.Column(db.Text, nullable=True)

    # --- BILAGOR ---
    photos = db.Column(db.Text, nullable=False, default='[]')  # JSON-lista med filnamn
    pdf_project = db.Column(db.String(100), nullable=True)
    pdf_phase = db.Column(db.String(100), nullable=True)
    pdf_drawing = db.Column(db.String(100), nullable=True)

    last_updated_at = db.Column(db.String(32), nullable=False, default=now_iso)

class Config(db.Model):
    __tablename__ = 'config'
    key = db.Column(db.String(50), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.String(32), nullable=False, default=now_iso)

class BoxPosition(db.Model):
    __tablename__ = 'box_positions'
    id = db.Column(db.String(100), primary_key=True)
    x = db.Column(db.Integer, nullable=False)
    y = db.Column(db.Integer, nullable=False)
    width = db.Column(db.Integer, nullable=False)
    height = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.String(32), nullable=False, default=now_iso)

class AuditLog(db.Model):
    __tablename__ = 'audit_log'
    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.String(32), nullable=False, default=now_iso, index=True)
    action = db.Column(db.String(250), nullable=False)
