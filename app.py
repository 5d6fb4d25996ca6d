import logging
import os
from io import BytesIO

import pandas as pd
from flask import Blueprint, Flask, current_app, jsonify, request, send_file, send_from_directory
from flask_cors import CORS
from sqlalchemy import event
from werkzeug.exceptions import HTTPException, NotFound, RequestEntityTooLarge

import attachments
import store
from database import db
from models import now_iso
from store import NotFoundError, PersistenceError, TaskPatch, TASK_FIELDS, ValidationError

api = Blueprint('api', __name__, url_prefix='/api')

# Kolumn -> ord i loggboken
FIELD_LABELS = {
    'worker_name': 'arbetare',
    'worker_name_2': 'arbetare 2',
    'task_description': 'uppgift',
    'project_number': 'projektnummer',
    'phase': 'fas',
    'drawing': 'ritning',
}
COLUMN_KEYS = {column: key for key, column in TASK_FIELDS.items()}


# --- KONFIGURATION ---
def create_app(test_config=None):
    app = Flask(__name__)
    data_dir = os.path.abspath(os.environ.get('TASKBOARD_DATA_DIR', 'data'))
    app.config.from_mapping(
        DATA_DIR=data_dir,
        UPLOADS_DIR=os.path.abspath(os.environ.get('TASKBOARD_UPLOADS_DIR', 'uploads')),
        SQLALCHEMY_DATABASE_URI='sqlite:///' + os.path.join(data_dir, 'tasks.db'),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        MAX_CONTENT_LENGTH=11 * 1024 * 1024,
        DEFAULT_PLACE_COUNT=4,
        CORS_ORIGIN=os.environ.get('TASKBOARD_CORS_ORIGIN', '*'),
    )
    if test_config:
        app.config.update(test_config)

    os.makedirs(app.config['DATA_DIR'], exist_ok=True)
    os.makedirs(app.config['UPLOADS_DIR'], exist_ok=True)

    db.init_app(app)
    with app.app_context():
        if db.engine.dialect.name == 'sqlite':
            event.listen(db.engine, 'connect', _sqlite_wal)
        db.create_all()
    app.logger.info('Databas initierad: %s', app.config['SQLALCHEMY_DATABASE_URI'])

    app.register_blueprint(api)
    _register_error_handlers(app)

    # Frontenden serveras separat
    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGIN"]}})

    return app

def _sqlite_wal(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute('PRAGMA journal_mode=WAL')
    cursor.close()


# --- FELHANTERING ---
def _register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def validation_error(exc):
        return jsonify(error=str(exc)), 400

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(exc):
        return jsonify(error='File too large'), 400

    @app.errorhandler(NotFoundError)
    def not_found(exc):
        return jsonify(error=str(exc)), 404

    @app.errorhandler(NotFound)
    def route_not_found(exc):
        return jsonify(error='Not found'), 404

    @app.errorhandler(HTTPException)
    def http_error(exc):
        return jsonify(error=exc.name), exc.code

    @app.errorhandler(PersistenceError)
    def persistence_error(exc):
        app.logger.error('Databasfel: %s', exc)
        return jsonify(error=str(exc)), 500

    @app.errorhandler(OSError)
    def file_error(exc):
        app.logger.exception('Filfel')
        return jsonify(error='Failed to store file'), 500


def _json_body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError('Request body must be a JSON object')
    return body


# --- ARBETSPLATSER ---
@api.route('/workplaces', methods=['GET'])
def get_workplaces():
    return jsonify(store.get_workplaces())

@api.route('/workplaces/<workplace_id>', methods=['PUT'])
def update_workplace(workplace_id):
    display_name = _json_body().get('displayName')
    workplace = store.upsert_workplace(workplace_id, display_name,
                                       note=f'Bytte namn på {workplace_id} till {display_name}')
    return jsonify(success=True, workplace=workplace)


# --- UPPGIFTER ---
@api.route('/shifts/<shift>/tasks', methods=['GET'])
def get_tasks(shift):
    return jsonify(store.get_tasks(shift))

@api.route('/shifts/<shift>/tasks/<task_id>', methods=['GET'])
def get_task(shift, task_id):
    return jsonify(store.get_task(shift, task_id))

@api.route('/shifts/<shift>/tasks/<task_id>', methods=['PUT'])
def update_task(shift, task_id):
    patch = TaskPatch.from_json(_json_body())
    before = store.get_task(shift, task_id)

    # Logga bara fält som faktiskt ändrats
    changed = [FIELD_LABELS[col] for col, value in patch.columns().items()
               if before.get(COLUMN_KEYS[col]) != value]
    note = f"{shift} | {task_id}: Ändrade {', '.join(changed)}" if changed else None

    task = store.upsert_task(shift, task_id, patch, note=note)
    return jsonify(success=True, task=task)


# --- FOTON ---
@api.route('/shifts/<shift>/tasks/<task_id>/photos', methods=['POST'])
def upload_photo(shift, task_id):
    filename, photos = attachments.add_photo(shift, task_id, request.files.get('photo'))
    return jsonify(success=True, filename=filename, photos=photos)

@api.route('/photos/<shift>/<task_id>/<filename>', methods=['GET'])
def serve_photo(shift, task_id, filename):
    directory, filename = attachments.resolve_photo(shift, task_id, filename)
    return send_from_directory(directory, filename)

@api.route('/shifts/<shift>/tasks/<task_id>/photos/<filename>', methods=['DELETE'])
def delete_photo(shift, task_id, filename):
    photos = attachments.remove_photo(shift, task_id, filename)
    return jsonify(success=True, photos=photos)


# --- PDF:ER ---
@api.route('/shifts/<shift>/tasks/<task_id>/pdf/<pdf_type>', methods=['POST'])
def upload_pdf(shift, task_id, pdf_type):
    filename = attachments.set_pdf(shift, task_id, pdf_type, request.files.get('pdf'))
    return jsonify(success=True, filename=filename, pdfType=pdf_type)

@api.route('/pdfs/<shift>/<task_id>/<pdf_type>/<filename>', methods=['GET'])
def serve_pdf(shift, task_id, pdf_type, filename):
    directory, filename = attachments.resolve_pdf(shift, task_id, pdf_type, filename)
    return send_from_directory(directory, filename, mimetype='application/pdf')

@api.route('/shifts/<shift>/tasks/<task_id>/pdf/<pdf_type>', methods=['DELETE'])
def delete_pdf(shift, task_id, pdf_type):
    attachments.remove_pdf(shift, task_id, pdf_type)
    return jsonify(success=True, pdfType=pdf_type)


# --- PLANRITNING ---
@api.route('/floorplan/upload', methods=['POST'])
def upload_floorplan():
    filename = attachments.set_floorplan(request.files.get('floorplan'))
    return jsonify(success=True, filename=filename)

@api.route('/floorplan/current', methods=['GET'])
def current_floorplan():
    return jsonify(filename=attachments.current_floorplan())

@api.route('/floorplan/image/<filename>', methods=['GET'])
def serve_floorplan(filename):
    directory, filename = attachments.resolve_floorplan(filename)
    return send_from_directory(directory, filename)

@api.route('/floorplan/current', methods=['DELETE'])
def delete_floorplan():
    attachments.remove_floorplan()
    return jsonify(success=True)


# --- LAYOUT ---
@api.route('/place-count', methods=['GET'])
def get_place_count():
    return jsonify(count=store.get_place_count(current_app.config['DEFAULT_PLACE_COUNT']))

@api.route('/place-count', methods=['PUT'])
def save_place_count():
    count = _json_body().get('count')
    store.set_place_count(count, note=f'Antal platser: {count}')
    return jsonify(success=True, count=count)

@api.route('/box-positions', methods=['GET'])
def get_box_positions():
    return jsonify(store.get_box_positions())

@api.route('/box-positions/<box_id>', methods=['GET'])
def get_box_position(box_id):
    position = store.get_box_position(box_id)
    if position is None:
        raise NotFoundError('Box position not found')
    return jsonify(position)

@api.route('/box-positions/<box_id>', methods=['PUT'])
def update_box_position(box_id):
    position = store.upsert_box_position(box_id, _json_body())
    return jsonify(success=True, position=position)


# --- LOGGBOK, EXPORT & HÄLSA ---
@api.route('/logs', methods=['GET'])
def view_logs():
    limit = request.args.get('limit', type=int, default=100)
    return jsonify(store.get_logs(max(1, min(limit, 1000))))

EXPORT_COLUMNS = ['Skift', 'Plats', 'Platsnamn', 'Arbetare', 'Arbetare 2', 'Uppgift',
                  'Projektnummer', 'Fas', 'Ritning', 'Antal foton', 'Senast ändrad']

@api.route('/export', methods=['GET'])
def export_excel():
    shift = request.args.get('shift')
    names = store.get_workplaces()
    data = [{
        'Skift': t['shift'],
        'Plats': t['id'],
        'Platsnamn': names.get(t['id'], {}).get('displayName', ''),
        'Arbetare': t['workerName'] or '',
        'Arbetare 2': t['workerName2'] or '',
        'Uppgift': t['taskDescription'] or '',
        'Projektnummer': t['projectNumber'] or '',
        'Fas': t['phase'] or '',
        'Ritning': t['drawing'] or '',
        'Antal foton': len(t['photos']),
        'Senast ändrad': t['lastUpdatedAt'],
    } for t in store.all_tasks(shift)]
    output = BytesIO(); pd.DataFrame(data, columns=EXPORT_COLUMNS).to_excel(output, index=False); output.seek(0)
    suffix = f'_{shift}' if shift else ''
    return send_file(output, download_name=f'Backup{suffix}_{now_iso()[:10]}.xlsx', as_attachment=True)

@api.route('/health', methods=['GET'])
def health():
    timestamp = now_iso()
    try:
        store.ping()
    except PersistenceError:
        return jsonify(status='error', timestamp=timestamp, database='disconnected'), 500
    return jsonify(status='ok', timestamp=timestamp, database='connected')


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_app().run(port=int(os.environ.get('PORT', 3001)))
