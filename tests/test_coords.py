import pytest

from pagekit.coords import (
    DocumentBox,
    NormalizedBox,
    anchor_box,
    map_box,
    to_document_space,
    to_normalized,
)
from pagekit.errors import InvalidOverlay


def test_to_document_space_letter_page():
    box = to_document_space(0.25, 0.10, 0.5, 0.2, 612, 792)
    assert box.x == pytest.approx(153)
    assert box.y == pytest.approx(554.4)
    assert box.width == pytest.approx(306)
    assert box.height == pytest.approx(158.4)


def test_top_left_corner_maps_to_top_of_page():
    box = to_document_space(0, 0, 0.1, 0.1, 100, 200)
    # bottom edge of the box sits one box-height below the page top
    assert box.y == pytest.approx(180)
    assert box.y + box.height == pytest.approx(200)


def test_map_box_applies_media_box_origin():
    box = map_box(NormalizedBox(0.25, 0.10, 0.5, 0.2), 612, 792, origin=(10, 20))
    assert box.x == pytest.approx(163)
    assert box.y == pytest.approx(574.4)


def test_to_normalized_inverts_mapping():
    nb = NormalizedBox(0.25, 0.10, 0.5, 0.2)
    back = to_normalized(map_box(nb, 612, 792), 612, 792)
    for name in ('x', 'y', 'width', 'height'):
        assert getattr(back, name) == pytest.approx(getattr(nb, name))


def test_from_percent():
    assert NormalizedBox.from_percent(25, 10, 50, 20) == NormalizedBox(0.25, 0.10, 0.5, 0.2)


@pytest.mark.parametrize('args', [
    (-0.1, 0, 0.5, 0.5),
    (0, 0, 1.2, 0.5),
    (0.6, 0, 0.5, 0.5),
    (0, 0.7, 0.1, 0.4),
])
def test_box_outside_page_is_rejected(args):
    with pytest.raises(InvalidOverlay):
        NormalizedBox(*args)


def test_clamped_and_from_corners():
    clipped = NormalizedBox.clamped(0.8, -0.1, 0.5, 0.3)
    assert (clipped.x, clipped.y) == (0.8, 0.0)
    assert clipped.width == pytest.approx(0.2)
    assert clipped.height == pytest.approx(0.2)
    dragged = NormalizedBox.from_corners(0.5, 0.6, 0.1, 0.2)
    assert (dragged.x, dragged.y) == (0.1, 0.2)
    assert dragged.width == pytest.approx(0.4)
    assert dragged.height == pytest.approx(0.4)


@pytest.mark.parametrize('anchor,x,y', [
    ('bottom-center', 256, 20),
    ('bottom-left', 20, 20),
    ('bottom-right', 492, 20),
    ('top-center', 256, 762),
    ('top-right', 492, 762),
    ('center', 256, 391),
    ('center-left', 20, 391),
])
def test_anchor_box(anchor, x, y):
    box = anchor_box(anchor, 100, 10, 612, 792, margin=20)
    assert (box.x, box.y) == (pytest.approx(x), pytest.approx(y))
    assert (box.width, box.height) == (100, 10)


def test_anchor_box_unknown_anchor():
    with pytest.raises(InvalidOverlay):
        anchor_box('middle', 10, 10, 100, 100)


def test_document_box_center():
    assert DocumentBox(10, 20, 100, 40).center == (60, 40)
