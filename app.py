"""Flask app for pagekit (development server).

Each uploaded PDF becomes one in-memory edit session keyed by its file_id.
The routes below only call the engine's entry points: initialize, the
page mutations, selection resolution, undo and compile. Everything is
returned as JSON except compiled documents, which are sent as downloads.
"""

# ------------------------ All Imports ------------------------
import os, time, threading, shutil
import uuid
import logging
from io import BytesIO
from flask import Flask, current_app, request, send_file, url_for, jsonify
from flask_wtf import CSRFProtect
from flask_wtf.csrf import generate_csrf
from werkzeug.utils import secure_filename

from pagekit import config
from pagekit.coords import NormalizedBox
from pagekit.errors import (
    CompilationFailed,
    EmptySelection,
    InvalidDocument,
    InvalidOverlay,
    InvalidRangeExpression,
    NotFound,
    NothingToUndo,
    OutOfRange,
)
from pagekit.file_index import FileIndex
from pagekit.overlays import (
    ALL_PAGES,
    ImageContent,
    PageNumberContent,
    TextContent,
    page_numbers,
    redaction,
    signature,
    watermark,
)
from pagekit.pdf_utils import generate_thumbnails, load_document
from pagekit.session import EditSession

#------------------------ Configuration ------------------------
UPLOAD_FOLDER = config.UPLOAD_FOLDER
THUMB_FOLDER = config.THUMB_FOLDER
DATA_DIR = config.DATA_DIR
for d in (UPLOAD_FOLDER, THUMB_FOLDER, DATA_DIR):
    os.makedirs(d, exist_ok=True)

#------------------------ Flask App ------------------------
app = Flask(__name__)
app.config['UPLOAD_FOLDER'] = UPLOAD_FOLDER
app.config['MAX_CONTENT_LENGTH'] = config.MAX_CONTENT_LENGTH
app.config['SECRET_KEY'] = config.SECRET_KEY
app.config['WTF_CSRF_ENABLED'] = config.ENABLE_CSRF

#------------------------ Logging ------------------------
logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)

#------------------------ Sessions ------------------------
ALLOWED_EXTENSIONS = {'pdf'}
IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg'}
indexer = FileIndex(os.path.join(DATA_DIR, 'index.json'))
SESSIONS = {}
_sessions_lock = threading.Lock()


def allowed_ext(filename: str, allowed=ALLOWED_EXTENSIONS) -> bool:
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in allowed


def _thumb_urls(file_id: str, data: bytes):
    thumb_dir = os.path.join(THUMB_FOLDER, os.path.splitext(file_id)[0])
    thumbs = generate_thumbnails(data, thumb_dir)
    folder = os.path.basename(thumb_dir)
    return [url_for('serve_thumb', file=folder, name=os.path.basename(p), _external=True) for p in thumbs]


def _open_session(file_id: str, data: bytes) -> EditSession:
    source = load_document(data)
    session = EditSession(source, thumbnails=_thumb_urls(file_id, data))
    with _sessions_lock:
        SESSIONS[file_id] = session
    return session


def _get_session(file_id: str):
    """Session for file_id, rebuilt from the upload on disk after a reload."""
    session = SESSIONS.get(file_id)
    if session is not None:
        return session
    mapped = indexer.get(file_id)
    if not mapped:
        return None
    path = os.path.join(app.config['UPLOAD_FOLDER'], mapped)
    if not os.path.exists(path):
        return None
    with open(path, 'rb') as fh:
        return _open_session(file_id, fh.read())


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _state(file_id: str, session: EditSession):
    state = session.state()
    state['file_id'] = file_id
    return jsonify(state)


def _base_name(file_id: str) -> str:
    name = file_id.split('_', 1)[-1]
    return name.rsplit('.', 1)[0] if name.lower().endswith('.pdf') else name


def _send_pdf(data: bytes, out_name: str, result=None):
    resp = send_file(BytesIO(data), as_attachment=True, download_name=out_name, mimetype='application/pdf')
    resp.headers['X-Download-Name'] = out_name
    if result is not None:
        resp.headers['X-Compile-Time'] = f"{result.elapsed:.3f}"
        resp.headers['X-Compile-Summary'] = result.summary()
        if result.warnings:
            resp.headers['X-Compile-Warning'] = '; '.join(result.warnings)
    return resp


def _mutate(file_id: str, action, *args):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    try:
        action(session, *args)
    except (OutOfRange, NotFound):
        # strict by default under the debugger
        if config.strict_mode(current_app.debug):
            raise
        logger.exception('ignoring stale page reference in %s', file_id)
    return _state(file_id, session)


def _target(session: EditSession, data: dict, default=ALL_PAGES) -> str:
    """Descriptor id from 'id', or from a 1-based store position in 'page'."""
    if data.get('id'):
        return data['id']
    if data.get('page') not in (None, ''):
        return session.store.get(int(data['page']) - 1).id
    return default


def _box(data: dict) -> NormalizedBox:
    """Percent box as the preview reports it."""
    return NormalizedBox.from_percent(
        float(data['x']), float(data['y']), float(data['width']), float(data['height'])
    )


#------------------------ CSRF Protection ------------------------
csrf = CSRFProtect(app) if config.ENABLE_CSRF else None


@app.route('/csrf-token')
def csrf_token():
    if csrf is None:
        return {'csrf_token': None}
    return {'csrf_token': generate_csrf()}


#------------------------ Error Handlers ------------------------
@app.errorhandler(InvalidDocument)
@app.errorhandler(InvalidRangeExpression)
@app.errorhandler(EmptySelection)
@app.errorhandler(InvalidOverlay)
def user_error(exc):
    return {'error': str(exc)}, 400


@app.errorhandler(NothingToUndo)
def nothing_to_undo(exc):
    return {'error': str(exc)}, 409


@app.errorhandler(CompilationFailed)
def compilation_failed(exc):
    # store is untouched, the user can adjust and retry
    return {'error': str(exc)}, 500


@app.errorhandler(OutOfRange)
@app.errorhandler(NotFound)
@app.errorhandler(KeyError)
@app.errorhandler(ValueError)
def bad_request(exc):
    # missing form fields, unknown ids and malformed numbers
    return {'error': f'bad request: {exc}'}, 400


#------------------------ Cleanup Old Files Thread ------------------------
def _forget_upload(name: str):
    for file_id, mapped in indexer.all().items():
        if mapped == name:
            indexer.delete(file_id)
            with _sessions_lock:
                SESSIONS.pop(file_id, None)


def cleanup_old_files(interval_sec=config.CLEANUP_INTERVAL_SEC, max_age_sec=config.CLEANUP_MAX_AGE_SEC):
    """Delete uploads and thumbnail folders older than max_age_sec every interval_sec seconds"""
    folders_to_clean = [UPLOAD_FOLDER, THUMB_FOLDER]

    def cleaner():
        while True:
            now = time.time()
            for folder in folders_to_clean:
                if not os.path.exists(folder):
                    continue
                for f in os.listdir(folder):
                    path = os.path.join(folder, f)
                    try:
                        if os.path.getmtime(path) >= now - max_age_sec:
                            continue
                        if os.path.isdir(path):
                            shutil.rmtree(path)
                        else:
                            os.remove(path)
                        if folder == UPLOAD_FOLDER:
                            _forget_upload(f)
                    except OSError:
                        logger.exception('Failed to delete %s', path)
            time.sleep(interval_sec)

    thread = threading.Thread(target=cleaner, daemon=True)
    thread.start()


if config.ENABLE_CLEANUP:
    # Start cleanup thread when app starts
    cleanup_old_files()


#------------------------ Routes ------------------------
#------------------------ -------------------------------

#------------------------ 0. Home ------------------------
@app.route('/')
def index():
    return {
        'tools': ['organize', 'rotate', 'extract', 'split', 'remove',
                  'redact', 'sign', 'watermark', 'page-numbers'],
    }


#------------------------ 1. Load PDF (initialize) ------------------------
@app.route('/sessions', methods=['POST'])
def create_session():
    f = request.files.get('pdf')
    if not f or f.filename.strip() == '':
        return {'error': 'No file uploaded'}, 400

    filename = secure_filename(f.filename)
    if not allowed_ext(filename):
        return {'error': 'Only PDF files are allowed'}, 400

    # --- Unique filename + save ---
    unique = f"{uuid.uuid4().hex}_{filename}"
    in_path = os.path.join(app.config['UPLOAD_FOLDER'], unique)
    f.save(in_path)
    with open(in_path, 'rb') as fh:
        data = fh.read()

    try:
        session = _open_session(unique, data)
    except InvalidDocument:
        os.remove(in_path)
        raise
    indexer.set(unique, unique)
    logger.info('session %s opened with %d pages', unique, session.source.page_count)
    return _state(unique, session), 201


@app.route('/sessions/<file_id>', methods=['GET'])
def get_session(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    return _state(file_id, session)


@app.route('/sessions/<file_id>/reset', methods=['POST'])
def reset_session(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    # duplicates share their original's thumbnail; keep one per source page
    seen = {}
    for e in session.store:
        seen.setdefault(e.source_index, e.thumbnail)
    thumbs = [seen.get(i) for i in range(session.source.page_count)]
    session.initialize(thumbs)
    return _state(file_id, session)


#------------------------ 2. Organize: page mutations ------------------------
@app.route('/sessions/<file_id>/rotate', methods=['POST'])
def rotate_page(file_id):
    data = _payload()
    return _mutate(file_id, lambda s: s.rotate(data['id'], data.get('direction', 'cw')))


@app.route('/sessions/<file_id>/rotate-all', methods=['POST'])
def rotate_all(file_id):
    data = _payload()
    return _mutate(file_id, lambda s: s.rotate_all(data.get('direction', 'cw')))


@app.route('/sessions/<file_id>/reset-rotation', methods=['POST'])
def reset_rotation(file_id):
    return _mutate(file_id, lambda s: s.reset_rotation())


@app.route('/sessions/<file_id>/delete', methods=['POST'])
def delete_page(file_id):
    data = _payload()
    return _mutate(file_id, lambda s: s.delete(data['id']))


@app.route('/sessions/<file_id>/restore', methods=['POST'])
def restore_page(file_id):
    data = _payload()
    return _mutate(file_id, lambda s: s.restore(data['id']))


@app.route('/sessions/<file_id>/duplicate', methods=['POST'])
def duplicate_page(file_id):
    data = _payload()
    return _mutate(file_id, lambda s: s.duplicate(data['id']))


@app.route('/sessions/<file_id>/reorder', methods=['POST'])
def reorder_pages(file_id):
    data = request.get_json(silent=True) or {}
    order = data.get('order')
    if not isinstance(order, list):
        return {'error': 'order must be a list of page ids'}, 400
    commit = bool(data.get('commit', True))
    return _mutate(file_id, lambda s: s.reorder(order, commit=commit))


@app.route('/sessions/<file_id>/undo', methods=['POST'])
def undo(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    session.undo()
    return _state(file_id, session)


@app.route('/sessions/<file_id>/organize', methods=['POST'])
def organize(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    result = session.compile()
    return _send_pdf(result.data, f"{_base_name(file_id)}_organize.pdf", result)


#------------------------ 3. Extract / Remove / Split ------------------------
def _selected_indices(session: EditSession, data: dict):
    """0-based source indices from 'range' (source page numbers) or 'pages' (1-based grid positions)."""
    if data.get('range') not in (None, ''):
        return session.resolve_selection(str(data['range']))
    pages = data.get('pages') or []
    if isinstance(pages, str):
        pages = [p for p in pages.split(',') if p.strip()]
    session.selection.set_mode('pick')
    session.selection.clear()
    session.selection.pick_many({int(p) - 1 for p in pages})
    return session.resolve_selection()


@app.route('/sessions/<file_id>/extract', methods=['POST'])
def extract_pages(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    data = _payload()
    indices = _selected_indices(session, data)
    result = session.compile_selection(indices, carry_rotation=bool(data.get('keep_rotation')))
    return _send_pdf(result.data, f"{_base_name(file_id)}_extract.pdf", result)


@app.route('/sessions/<file_id>/remove', methods=['POST'])
def remove_pages(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    indices = _selected_indices(session, _payload())
    result = session.remove_selection(indices)
    return _send_pdf(result.data, f"{_base_name(file_id)}_remove.pdf", result)


@app.route('/sessions/<file_id>/split-all', methods=['POST'])
def split_all(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    out_name = f"{_base_name(file_id)}_split.zip"
    resp = send_file(BytesIO(session.split_each()), as_attachment=True,
                     download_name=out_name, mimetype='application/zip')
    resp.headers['X-Download-Name'] = out_name
    return resp


#------------------------ 4. Overlay tools ------------------------
@app.route('/sessions/<file_id>/redact', methods=['POST'])
def redact(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    data = request.get_json(silent=True) or {}
    boxes = data.get('boxes') or []
    if not boxes:
        return {'error': 'draw at least one redaction box'}, 400
    first_page = session.store.active_entries()[0].id if session.store.active_entries() else ALL_PAGES
    specs = [redaction(_box(b), target=_target(session, b, default=first_page),
                       color=b.get('color', '#000000')) for b in boxes]
    result = session.compile(specs)
    return _send_pdf(result.data, f"{_base_name(file_id)}_redact.pdf", result)


@app.route('/sessions/<file_id>/sign', methods=['POST'])
def sign(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    data = _payload()
    image = request.files.get('image')
    if image and image.filename.strip():
        if not allowed_ext(secure_filename(image.filename), IMAGE_EXTENSIONS):
            return {'error': 'Signature must be PNG or JPEG'}, 400
        content = ImageContent(image.read())
    elif data.get('text'):
        content = TextContent(data['text'], font=data.get('font', 'Helvetica-Oblique'),
                              size=float(data.get('size', 36)), color=data.get('color', '#000000'))
    else:
        return {'error': 'provide a signature image or text'}, 400
    target = _target(session, data, default=None)
    if target is None:
        return {'error': 'choose the page to sign'}, 400
    result = session.compile([signature(content, _box(data), target)])
    return _send_pdf(result.data, f"{_base_name(file_id)}_sign.pdf", result)


@app.route('/sessions/<file_id>/watermark', methods=['POST'])
def apply_watermark(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    data = _payload()
    opacity = float(data.get('opacity', 0.5))
    rotation = float(data.get('rotation', 45))
    size = float(data.get('size', 50))
    image = request.files.get('image')
    if data.get('type', 'text') == 'image':
        if not image or not allowed_ext(secure_filename(image.filename), IMAGE_EXTENSIONS):
            return {'error': 'Watermark image must be PNG or JPEG'}, 400
        content = ImageContent(image.read(), opacity=opacity, rotation=rotation, scale=size / 100.0)
    else:
        content = TextContent(data.get('text') or 'CONFIDENTIAL', size=size,
                              color=data.get('color', '#FF0000'), opacity=opacity, rotation=rotation)
    result = session.compile([watermark(content, target=_target(session, data))])
    return _send_pdf(result.data, f"{_base_name(file_id)}_watermark.pdf", result)


@app.route('/sessions/<file_id>/page-numbers', methods=['POST'])
def add_page_numbers(file_id):
    session = _get_session(file_id)
    if session is None:
        return {'error': 'session not found'}, 404
    data = _payload()
    content = PageNumberContent(
        template=data.get('format', 'Page {n}'),
        start_from=int(data.get('start_from', 1)),
        font_size=float(data.get('font_size', 12)),
    )
    spec = page_numbers(content, position=data.get('position', 'bottom-center'),
                        margin=float(data.get('margin', 20)))
    result = session.compile([spec])
    return _send_pdf(result.data, f"{_base_name(file_id)}_numbered.pdf", result)


#------------------------ 5. Thumbnails ------------------------
@app.route('/thumbs/<file>/<name>')
def serve_thumb(file, name):
    path = os.path.join(THUMB_FOLDER, secure_filename(file), secure_filename(name))
    if not os.path.exists(path):
        logger.warning('serve_thumb: requested thumb not found: %s', path)
        return ('Not found', 404)
    return send_file(path, mimetype='image/jpeg')


#------------------------ Main ------------------------
if __name__ == '__main__':
    # Bind only to a local interface, '0.0.0.0' or 'localhost'; anything else
    # falls back to 127.0.0.1 with a warning.
    import socket

    bind_host_env = config.BIND_HOST
    port = config.PORT

    # Gather likely local addresses
    local_addrs = {'127.0.0.1', '::1', 'localhost'}
    try:
        hn = socket.gethostname()
        for a in socket.gethostbyname_ex(hn)[2]:
            local_addrs.add(a)
    except OSError:
        logger.warning('Failed to resolve local host addresses; using defaults.')

    if bind_host_env in ('0.0.0.0', '::', '') or bind_host_env in local_addrs:
        bind_host = bind_host_env
    else:
        logger.warning(
            'Requested bind host "%s" is not among local interfaces; falling back to 127.0.0.1',
            bind_host_env
        )
        bind_host = '127.0.0.1'

    logger.info(f'Starting server on http://{bind_host}:{port} (requested: {bind_host_env})')

    try:
        app.run(host=bind_host, port=port, debug=True)
    except OSError:
        logger.exception('Failed to bind server on %s:%d', bind_host, port)
        raise
