import io
import os
import tempfile

# settings are read at import time; point them at a scratch dir first
os.environ.setdefault('PAGEKIT_DATA_DIR', tempfile.mkdtemp(prefix='pagekit-tests-'))
os.environ['ENABLE_CLEANUP'] = '0'
os.environ['ENABLE_CSRF'] = '0'

import pytest
from PIL import Image
from pypdf import PdfReader, PdfWriter
from reportlab.pdfgen import canvas

from pagekit.pdf_utils import load_document
from pagekit.session import EditSession


def make_pdf(widths, height=792, rotations=None):
    """Blank pages, told apart by their width in points."""
    writer = PdfWriter()
    for i, width in enumerate(widths):
        page = writer.add_blank_page(width=width, height=height)
        if rotations and rotations[i]:
            page.rotate(rotations[i])
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def page_widths(data):
    reader = PdfReader(io.BytesIO(data))
    return [round(float(p.mediabox.width)) for p in reader.pages]


def page_rotations(data):
    reader = PdfReader(io.BytesIO(data))
    return [int(p.rotation or 0) % 360 for p in reader.pages]


def make_text_pdf(texts, size=(612, 792)):
    """One page per string, each with a real content stream."""
    buf = io.BytesIO()
    can = canvas.Canvas(buf, pagesize=size)
    for text in texts:
        can.setFont('Helvetica', 24)
        can.drawString(72, size[1] - 144, text)
        can.showPage()
    can.save()
    return buf.getvalue()


def make_png(size=(40, 20), color=(255, 0, 0, 255)):
    buf = io.BytesIO()
    Image.new('RGBA', size, color).save(buf, 'PNG')
    return buf.getvalue()


@pytest.fixture
def pdf_bytes():
    return make_pdf([100, 200, 300, 400, 500])


@pytest.fixture
def source(pdf_bytes):
    return load_document(pdf_bytes)


@pytest.fixture
def session(source):
    return EditSession(source)


@pytest.fixture
def client():
    import app as app_module

    app_module.app.config['TESTING'] = True
    app_module.app.debug = False
    with app_module.app.test_client() as c:
        yield c
    app_module.SESSIONS.clear()
