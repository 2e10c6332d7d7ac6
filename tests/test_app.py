import io
import zipfile
from urllib.parse import urlparse

import pytest

import app as app_module
from conftest import make_pdf, make_png, page_rotations, page_widths


def upload(client, data=None, name='doc.pdf'):
    data = make_pdf([100, 200, 300]) if data is None else data
    return client.post('/sessions', data={'pdf': (io.BytesIO(data), name)},
                       content_type='multipart/form-data')


@pytest.fixture
def opened(client):
    resp = upload(client)
    assert resp.status_code == 201
    return resp.get_json()


def test_index(client):
    assert 'organize' in client.get('/').get_json()['tools']


def test_upload_creates_session(opened):
    assert opened['page_count'] == 3
    assert [p['page_number'] for p in opened['pages']] == [1, 2, 3]
    assert opened['file_id'].endswith('_doc.pdf')
    assert opened['can_undo'] is False


def test_upload_rejects_other_extensions(client):
    resp = upload(client, name='notes.txt')
    assert resp.status_code == 400


def test_upload_rejects_bad_pdf(client):
    resp = upload(client, data=b'definitely not a pdf')
    assert resp.status_code == 400
    assert 'PDF' in resp.get_json()['error']


def test_missing_session(client):
    assert client.get('/sessions/nope').status_code == 404
    assert client.post('/sessions/nope/undo').status_code == 404


def test_thumbnails_are_served(client, opened):
    path = urlparse(opened['pages'][0]['thumbnail']).path
    resp = client.get(path)
    assert resp.status_code == 200
    assert resp.mimetype == 'image/jpeg'


def test_rotate_and_undo(client, opened):
    fid, page = opened['file_id'], opened['pages'][0]['id']
    state = client.post(f'/sessions/{fid}/rotate', json={'id': page, 'direction': 'cw'}).get_json()
    assert state['pages'][0]['rotation'] == 90
    assert state['can_undo'] is True
    state = client.post(f'/sessions/{fid}/undo').get_json()
    assert state['pages'][0]['rotation'] == 0
    resp = client.post(f'/sessions/{fid}/undo')
    assert resp.status_code == 409


def test_stale_id_is_ignored_when_not_strict(client, opened, monkeypatch):
    monkeypatch.delenv('PAGEKIT_STRICT', raising=False)
    fid = opened['file_id']
    resp = client.post(f'/sessions/{fid}/delete', json={'id': 'page-gone'})
    assert resp.status_code == 200
    assert resp.get_json()['deleted_count'] == 0
    assert resp.get_json()['can_undo'] is False


def test_stale_id_fails_when_strict(client, opened, monkeypatch):
    monkeypatch.setenv('PAGEKIT_STRICT', '1')
    resp = client.post(f"/sessions/{opened['file_id']}/delete", json={'id': 'page-gone'})
    assert resp.status_code == 400


def test_debug_server_is_strict_by_default(client, opened, monkeypatch):
    monkeypatch.delenv('PAGEKIT_STRICT', raising=False)
    app_module.app.debug = True
    resp = client.post(f"/sessions/{opened['file_id']}/delete", json={'id': 'page-gone'})
    assert resp.status_code == 400
    app_module.app.debug = False
    resp = client.post(f"/sessions/{opened['file_id']}/delete", json={'id': 'page-gone'})
    assert resp.status_code == 200


def test_bad_direction(client, opened):
    page = opened['pages'][0]['id']
    resp = client.post(f"/sessions/{opened['file_id']}/rotate", json={'id': page, 'direction': 'up'})
    assert resp.status_code == 400


def test_delete_duplicate_reorder_then_organize(client, opened):
    fid = opened['file_id']
    ids = [p['id'] for p in opened['pages']]
    client.post(f'/sessions/{fid}/delete', json={'id': ids[1]})
    state = client.post(f'/sessions/{fid}/duplicate', json={'id': ids[2]}).get_json()
    copy = state['pages'][3]['id']
    # drag frames, then the drop
    client.post(f'/sessions/{fid}/reorder', json={'order': [ids[2], ids[0], copy], 'commit': False})
    state = client.post(f'/sessions/{fid}/reorder', json={'order': [ids[2], copy, ids[0]], 'commit': True}).get_json()
    assert state['history'] == 3

    resp = client.post(f'/sessions/{fid}/organize')
    assert resp.status_code == 200
    assert resp.mimetype == 'application/pdf'
    assert resp.headers['X-Download-Name'] == 'doc_organize.pdf'
    assert float(resp.headers['X-Compile-Time']) >= 0
    assert page_widths(resp.data) == [300, 300, 100]


def test_reorder_needs_a_list(client, opened):
    resp = client.post(f"/sessions/{opened['file_id']}/reorder", json={'order': 'abc'})
    assert resp.status_code == 400


def test_rotate_all_and_reset(client, opened):
    fid = opened['file_id']
    client.post(f'/sessions/{fid}/rotate-all', json={'direction': 'ccw'})
    resp = client.post(f'/sessions/{fid}/organize')
    assert page_rotations(resp.data) == [270, 270, 270]
    state = client.post(f'/sessions/{fid}/reset-rotation').get_json()
    assert all(p['rotation'] == 0 for p in state['pages'])


def test_reset_session(client, opened):
    fid = opened['file_id']
    client.post(f'/sessions/{fid}/duplicate', json={'id': opened['pages'][0]['id']})
    state = client.post(f'/sessions/{fid}/reset').get_json()
    assert len(state['pages']) == 3
    assert state['can_undo'] is False
    assert state['pages'][0]['thumbnail'] == opened['pages'][0]['thumbnail']


def test_organize_with_everything_deleted(client, opened):
    fid = opened['file_id']
    for page in opened['pages']:
        client.post(f'/sessions/{fid}/delete', json={'id': page['id']})
    resp = client.post(f'/sessions/{fid}/organize')
    assert resp.status_code == 400


def test_extract_by_range_and_pick(client, opened):
    fid = opened['file_id']
    resp = client.post(f'/sessions/{fid}/extract', json={'range': '3, 1'})
    assert page_widths(resp.data) == [100, 300]
    assert resp.headers['X-Download-Name'] == 'doc_extract.pdf'
    resp = client.post(f'/sessions/{fid}/extract', json={'pages': [2, 2]})
    assert page_widths(resp.data) == [200]


def test_extract_bad_range(client, opened):
    resp = client.post(f"/sessions/{opened['file_id']}/extract", json={'range': 'abc'})
    assert resp.status_code == 400
    resp = client.post(f"/sessions/{opened['file_id']}/extract", json={'pages': []})
    assert resp.status_code == 400


def test_remove(client, opened):
    fid = opened['file_id']
    resp = client.post(f'/sessions/{fid}/remove', json={'range': '2'})
    assert page_widths(resp.data) == [100, 300]
    resp = client.post(f'/sessions/{fid}/remove', json={'range': '1-3'})
    assert resp.status_code == 400


def test_split_all(client, opened):
    resp = client.post(f"/sessions/{opened['file_id']}/split-all")
    assert resp.mimetype == 'application/zip'
    archive = zipfile.ZipFile(io.BytesIO(resp.data))
    assert len(archive.namelist()) == 3


def test_redact(client, opened):
    fid = opened['file_id']
    resp = client.post(f'/sessions/{fid}/redact',
                       json={'boxes': [{'x': 10, 'y': 10, 'width': 50, 'height': 20, 'page': 2}]})
    assert resp.status_code == 200
    assert 'X-Compile-Warning' in resp.headers
    resp = client.post(f'/sessions/{fid}/redact', json={'boxes': [{'x': 90, 'y': 10, 'width': 50, 'height': 20}]})
    assert resp.status_code == 400
    assert client.post(f'/sessions/{fid}/redact', json={'boxes': []}).status_code == 400


def test_sign_with_image(client, opened):
    fid = opened['file_id']
    resp = client.post(f'/sessions/{fid}/sign', data={
        'image': (io.BytesIO(make_png()), 'sig.png'),
        'page': '1', 'x': '50', 'y': '80', 'width': '30', 'height': '10',
    }, content_type='multipart/form-data')
    assert resp.status_code == 200
    assert resp.headers['X-Download-Name'] == 'doc_sign.pdf'


def test_sign_needs_content_and_page(client, opened):
    fid = opened['file_id']
    resp = client.post(f'/sessions/{fid}/sign', json={'page': 1, 'x': 0, 'y': 0, 'width': 10, 'height': 10})
    assert resp.status_code == 400
    resp = client.post(f'/sessions/{fid}/sign', json={'text': 'J. Doe', 'x': 0, 'y': 0, 'width': 10, 'height': 10})
    assert resp.status_code == 400
    resp = client.post(f'/sessions/{fid}/sign', json={'text': 'J. Doe', 'page': 9, 'x': 0, 'y': 0, 'width': 10, 'height': 10})
    assert resp.status_code == 400


def test_watermark_and_page_numbers(client, opened):
    fid = opened['file_id']
    resp = client.post(f'/sessions/{fid}/watermark', json={'text': 'DRAFT', 'opacity': 0.3})
    assert resp.status_code == 200
    assert page_widths(resp.data) == [100, 200, 300]
    resp = client.post(f'/sessions/{fid}/page-numbers', json={'position': 'top-right', 'format': '{n}/{total}'})
    assert resp.status_code == 200
    assert resp.headers['X-Download-Name'] == 'doc_numbered.pdf'
    resp = client.post(f'/sessions/{fid}/page-numbers', json={'position': 'nowhere'})
    assert resp.status_code == 400


def test_session_is_rebuilt_after_reload(client, opened):
    fid = opened['file_id']
    app_module.SESSIONS.clear()
    state = client.get(f'/sessions/{fid}').get_json()
    assert state['page_count'] == 3
