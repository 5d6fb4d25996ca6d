import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, fields

from sqlalchemy import text
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import SQLAlchemyError

from database import db
from models import AuditLog, BoxPosition, Config, Task, Workplace, now_iso

logger = logging.getLogger(__name__)

FLOORPLAN_KEY = 'floorplan_image'
PLACE_COUNT_KEY = 'place_count'
DEFAULT_PLACE_COUNT = 4


# --- FEL ---
class PersistenceError(Exception):
    """Databasen gick inte att läsa eller skriva."""

class ValidationError(ValueError):
    """Felaktig indata från klienten (400)."""

class NotFoundError(LookupError):
    """Posten eller filen finns inte (404)."""


@contextmanager
def _reading(message):
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception(message)
        raise PersistenceError(message) from exc

@contextmanager
def _writing(message, note=None):
    """Kör skrivningar i en transaktion. `note` hamnar i loggboken i samma commit."""
    try:
        yield
        if note:
            db.session.add(AuditLog(action=note[:250]))
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception(message)
        raise PersistenceError(message) from exc


# --- PATCH FÖR UPPGIFTER ---
class _Unset:
    def __repr__(self):
        return 'UNSET'

UNSET = _Unset()

# JSON-nyckel -> kolumn
TASK_FIELDS = {
    'workerName': 'worker_name',
    'workerName2': 'worker_name_2',
    'taskDescription': 'task_description',
    'projectNumber': 'project_number',
    'phase': 'phase',
    'drawing': 'drawing',
}

@dataclass
class TaskPatch:
    """Delvis uppdatering av en uppgift. Fält som är UNSET lämnas orörda i databasen."""
    worker_name: object = UNSET
    worker_name_2: object = UNSET
    task_description: object = UNSET
    project_number: object = UNSET
    phase: object = UNSET
    drawing: object = UNSET

    @classmethod
    def from_json(cls, body):
        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise ValidationError('Request body must be a JSON object')
        values = {}
        for key, column in TASK_FIELDS.items():
            if key not in body:
                continue
            value = body[key]
            if isinstance(value, bool) or not isinstance(value, (str, int, float, type(None))):
                raise ValidationError(f'{key} must be a string or a number')
            # Tom sträng sparas som NULL
            values[column] = None if value is None or value == '' else str(value)
        return cls(**values)

    def columns(self):
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}


def _load_photos(raw):
    if not raw:
        return []
    try:
        photos = json.loads(raw)
    except ValueError:
        logger.warning('Trasig fotolista i databasen: %r', raw)
        return []
    return photos if isinstance(photos, list) else []

def task_to_dict(task):
    return {
        'workerName': task.worker_name,
        'workerName2': task.worker_name_2,
        'taskDescription': task.task_description,
        'projectNumber': task.project_number,
        'phase': task.phase,
        'drawing': task.drawing,
        'photos': _load_photos(task.photos),
        'pdfProject': task.pdf_project,
        'pdfPhase': task.pdf_phase,
        'pdfDrawing': task.pdf_drawing,
        'lastUpdatedAt': task.last_updated_at,
    }


# --- ARBETSPLATSER ---
def get_workplaces():
    with _reading('Failed to get workplaces'):
        rows = Workplace.query.all()
    return {w.id: {'displayName': w.display_name} for w in rows}

def upsert_workplace(workplace_id, display_name, note=None):
    if display_name is None or not str(display_name).strip():
        raise ValidationError('displayName is required')
    display_name = str(display_name)
    ts = now_iso()
    stmt = insert(Workplace.__table__).values(id=workplace_id, display_name=display_name, updated_at=ts)
    stmt = stmt.on_conflict_do_update(
        index_elements=['id'],
        set_={'display_name': display_name, 'updated_at': ts},
    )
    with _writing('Failed to update workplace', note):
        db.session.execute(stmt)
    return {'displayName': display_name}


# --- UPPGIFTER ---
def get_tasks(shift):
    with _reading('Failed to get tasks'):
        rows = Task.query.filter_by(shift=shift).all()
    return {t.id: task_to_dict(t) for t in rows}

def _get_task_row(shift, task_id):
    with _reading('Failed to get task'):
        return db.session.get(Task, {'id': task_id, 'shift': shift})

def get_task(shift, task_id):
    """Returnerar {} om uppgiften inte finns."""
    row = _get_task_row(shift, task_id)
    return task_to_dict(row) if row else {}

def _upsert_task_columns(shift, task_id, values, message, note=None):
    # Bara kolumnerna i `values` skrivs över vid konflikt, resten av raden behålls.
    ts = now_iso()
    stmt = insert(Task.__table__).values(id=task_id, shift=shift, last_updated_at=ts, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=['id', 'shift'],
        set_={**values, 'last_updated_at': ts},
    )
    with _writing(message, note):
        db.session.execute(stmt)

def upsert_task(shift, task_id, patch, note=None):
    if isinstance(patch, dict):
        patch = TaskPatch.from_json(patch)
    _upsert_task_columns(shift, task_id, patch.columns(), 'Failed to update task', note)
    return get_task(shift, task_id)

def get_task_photos(shift, task_id):
    """Fotolistan, eller None om uppgiften saknas."""
    row = _get_task_row(shift, task_id)
    return _load_photos(row.photos) if row else None

def set_task_photos(shift, task_id, photos, note=None):
    _upsert_task_columns(shift, task_id, {'photos': json.dumps(list(photos))}, 'Failed to update photos', note)

def get_task_pdf(shift, task_id, pdf_type):
    row = _get_task_row(shift, task_id)
    return getattr(row, f'pdf_{pdf_type}') if row else None

def set_task_pdf(shift, task_id, pdf_type, filename, note=None):
    _upsert_task_columns(shift, task_id, {f'pdf_{pdf_type}': filename}, 'Failed to update PDF', note)

def all_tasks(shift=None):
    with _reading('Failed to get tasks'):
        query = Task.query
        if shift:
            query = query.filter_by(shift=shift)
        rows = query.order_by(Task.shift, Task.id).all()
    return [dict(id=t.id, shift=t.shift, **task_to_dict(t)) for t in rows]


# --- KONFIGURATION ---
def get_config(key, default=None):
    with _reading('Failed to read config'):
        row = db.session.get(Config, key)
    return row.value if row else default

def set_config(key, value, note=None):
    ts = now_iso()
    stmt = insert(Config.__table__).values(key=key, value=str(value), updated_at=ts)
    stmt = stmt.on_conflict_do_update(
        index_elements=['key'],
        set_={'value': str(value), 'updated_at': ts},
    )
    with _writing('Failed to save config', note):
        db.session.execute(stmt)

def delete_config(key, note=None):
    with _writing('Failed to delete config', note):
        deleted = Config.query.filter_by(key=key).delete()
    return deleted > 0

def get_place_count(default=DEFAULT_PLACE_COUNT):
    value = get_config(PLACE_COUNT_KEY)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning('Ogiltigt antal platser i config: %r', value)
        return default

def set_place_count(count, note=None):
    if isinstance(count, bool) or not isinstance(count, int) or count < 0:
        raise ValidationError('count must be a non-negative integer')
    set_config(PLACE_COUNT_KEY, count, note)
    return count


# --- BOXPOSITIONER ---
RECT_FIELDS = ('x', 'y', 'width', 'height')

def _rect(values):
    if not isinstance(values, dict):
        raise ValidationError('Request body must be a JSON object')
    rect = {}
    for name in RECT_FIELDS:
        value = values.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f'{name} must be a number')
        rect[name] = int(round(value))
    return rect

def get_box_positions():
    with _reading('Failed to get box positions'):
        rows = BoxPosition.query.all()
    return {p.id: {'x': p.x, 'y': p.y, 'width': p.width, 'height': p.height} for p in rows}

def get_box_position(box_id):
    with _reading('Failed to get box position'):
        p = db.session.get(BoxPosition, box_id)
    return {'x': p.x, 'y': p.y, 'width': p.width, 'height': p.height} if p else None

def upsert_box_position(box_id, values):
    """Hela rektangeln skrivs över, ingen sammanslagning."""
    rect = _rect(values)
    ts = now_iso()
    stmt = insert(BoxPosition.__table__).values(id=box_id, updated_at=ts, **rect)
    stmt = stmt.on_conflict_do_update(index_elements=['id'], set_={**rect, 'updated_at': ts})
    with _writing('Failed to update box position'):
        db.session.execute(stmt)
    return rect


# --- LOGGBOK & HÄLSA ---
def get_logs(limit=100):
    with _reading('Failed to get logs'):
        rows = AuditLog.query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(limit).all()
    return [{'timestamp': r.timestamp, 'action': r.action} for r in rows]

def ping():
    with _reading('Database unreachable'):
        db.session.execute(text('SELECT 1'))
