import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path

from flask import current_app
from werkzeug.utils import secure_filename

import store
from store import FLOORPLAN_KEY, NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

MB = 1024 * 1024
PDF_TYPES = ('project', 'phase', 'drawing')


# --- REGLER FÖR UPPLADDNING ---
@dataclass(frozen=True)
class AttachmentRule:
    label: str
    content_type: str  # slutar på '/' = hela familjen, t.ex. 'image/'
    max_bytes: int

    def accepts(self, mimetype):
        if self.content_type.endswith('/'):
            return mimetype.startswith(self.content_type)
        return mimetype == self.content_type

PHOTO_RULE = AttachmentRule('image', 'image/', 5 * MB)
PDF_RULE = AttachmentRule('PDF', 'application/pdf', 10 * MB)
FLOORPLAN_RULE = AttachmentRule('image', 'image/', 10 * MB)


def _size(file):
    stream = file.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size

def validate(file, rule):
    if file is None or not file.filename:
        raise ValidationError('No file uploaded')
    mimetype = (file.mimetype or '').lower()
    if not rule.accepts(mimetype):
        raise ValidationError(f'Only {rule.label} files are allowed!')
    if _size(file) > rule.max_bytes:
        raise ValidationError(f'File too large (max {rule.max_bytes // MB}MB)')

def check_pdf_type(pdf_type):
    if pdf_type not in PDF_TYPES:
        raise ValidationError('Invalid PDF type')
    return pdf_type


# --- SÖKVÄGAR ---
def _segment(value, what):
    # Delar från URL:en får inte leda ut ur uploads-katalogen
    if not value or value in ('.', '..') or '/' in value or '\\' in value or '\x00' in value:
        raise ValidationError(f'Invalid {what}')
    return value

def uploads_root():
    return Path(current_app.config['UPLOADS_DIR']).resolve()

def task_dir(shift, task_id):
    if shift == 'floorplan':
        raise ValidationError('Invalid shift')
    return uploads_root() / _segment(shift, 'shift') / _segment(task_id, 'task id')

def pdf_dir(shift, task_id, pdf_type):
    return task_dir(shift, task_id) / 'pdfs' / check_pdf_type(pdf_type)

def floorplan_dir():
    return uploads_root() / 'floorplan'


def _reserve(directory, prefix, ext):
    """Skapar en ny tom fil med tidsbaserat namn (millisekunder), unikt inom katalogen."""
    stamp = int(time.time() * 1000)
    while True:
        filename = f'{prefix}{stamp}{ext}'
        try:
            # 'xb' misslyckas om filen redan finns, även vid samtidiga uppladdningar
            return filename, open(directory / filename, 'xb')
        except FileExistsError:
            stamp += 1

def _write(file, directory, prefix=''):
    directory.mkdir(parents=True, exist_ok=True)
    ext = os.path.splitext(secure_filename(file.filename))[1].lower()
    filename, fh = _reserve(directory, prefix, ext)
    try:
        with fh:
            file.stream.seek(0)
            file.save(fh)
    except OSError:
        _discard(directory / filename)
        raise
    return filename

def _discard(path):
    try:
        if path.is_file():
            path.unlink()
    except OSError:
        logger.exception('Kunde inte ta bort fil %s', path)

def _existing(directory, filename, message):
    filename = _segment(filename, 'filename')
    if not (directory / filename).is_file():
        raise NotFoundError(message)
    return directory, filename


# --- FOTON ---
def add_photo(shift, task_id, file):
    validate(file, PHOTO_RULE)
    directory = task_dir(shift, task_id)
    filename = _write(file, directory)
    try:
        photos = store.get_task_photos(shift, task_id) or []
        photos.append(filename)
        store.set_task_photos(shift, task_id, photos, note=f'Foto tillagt: {shift} | {task_id} | {filename}')
    except PersistenceError:
        _discard(directory / filename)
        raise
    return filename, photos

def remove_photo(shift, task_id, filename):
    """Tar bort namnet ur listan och sedan filen. Okänt namn lämnar listan orörd."""
    filename = _segment(filename, 'filename')
    directory = task_dir(shift, task_id)
    photos = store.get_task_photos(shift, task_id)
    if photos is None:
        raise NotFoundError('Task not found')
    if filename in photos:
        photos = [p for p in photos if p != filename]
        store.set_task_photos(shift, task_id, photos, note=f'Foto borttaget: {shift} | {task_id} | {filename}')
    _discard(directory / filename)
    return photos

def resolve_photo(shift, task_id, filename):
    return _existing(task_dir(shift, task_id), filename, 'Photo not found')


# --- PDF:ER (en per typ) ---
def set_pdf(shift, task_id, pdf_type, file):
    directory = pdf_dir(shift, task_id, pdf_type)
    validate(file, PDF_RULE)
    old = store.get_task_pdf(shift, task_id, pdf_type)

    # Ny fil -> pekare -> gammal fil bort
    filename = _write(file, directory, f'{pdf_type}-')
    try:
        store.set_task_pdf(shift, task_id, pdf_type, filename,
                           note=f'PDF ({pdf_type}) uppladdad: {shift} | {task_id}')
    except PersistenceError:
        _discard(directory / filename)
        raise
    if old and old != filename:
        _discard(directory / old)
    return filename

def remove_pdf(shift, task_id, pdf_type):
    directory = pdf_dir(shift, task_id, pdf_type)
    old = store.get_task_pdf(shift, task_id, pdf_type)
    if not old:
        raise NotFoundError('PDF not found')
    store.set_task_pdf(shift, task_id, pdf_type, None,
                       note=f'PDF ({pdf_type}) borttagen: {shift} | {task_id}')
    _discard(directory / old)

def resolve_pdf(shift, task_id, pdf_type, filename):
    return _existing(pdf_dir(shift, task_id, pdf_type), filename, 'PDF not found')


# --- PLANRITNING ---
def current_floorplan():
    return store.get_config(FLOORPLAN_KEY)

def set_floorplan(file):
    validate(file, FLOORPLAN_RULE)
    directory = floorplan_dir()
    old = store.get_config(FLOORPLAN_KEY)
    filename = _write(file, directory, 'floorplan-')
    try:
        store.set_config(FLOORPLAN_KEY, filename, note=f'Ny planritning: {filename}')
    except PersistenceError:
        _discard(directory / filename)
        raise
    if old and old != filename:
        _discard(directory / old)
    return filename

def remove_floorplan():
    old = store.get_config(FLOORPLAN_KEY)
    if not old:
        raise NotFoundError('No floorplan found')
    store.delete_config(FLOORPLAN_KEY, note='Planritning borttagen')
    _discard(floorplan_dir() / old)

def resolve_floorplan(filename):
    return _existing(floorplan_dir(), filename, 'Floorplan not found')
