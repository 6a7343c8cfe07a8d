from __future__ import annotations

import io

import pytest
from PIL import Image

from standup_render import COLORS, render_sequences, write_png


def test_rows_are_sequences_and_columns_are_frames() -> None:
    sequences = [
        (None, True, False),
        (False, None, True),
    ]

    image = render_sequences(sequences, 3)

    assert image.size == (3, 2)
    assert image.getpixel((0, 0)) == COLORS[None]
    assert image.getpixel((1, 0)) == (0, 255, 0)
    assert image.getpixel((2, 0)) == (255, 0, 0)
    assert image.getpixel((0, 1)) == (255, 0, 0)
    assert image.getpixel((2, 1)) == (0, 255, 0)


def test_short_sequence_leaves_white_tail() -> None:
    image = render_sequences([(True,)], 2)

    assert image.getpixel((0, 0)) == COLORS[True]
    assert image.getpixel((1, 0)) == COLORS[None]


def test_write_png_to_stream() -> None:
    buf = io.BytesIO()

    write_png([(True, None)], 2, buf)

    buf.seek(0)
    with Image.open(buf) as image:
        assert image.format == "PNG"
        assert image.size == (2, 1)


def test_nothing_to_render() -> None:
    with pytest.raises(ValueError, match="no sequences"):
        render_sequences([], 4)


def test_zero_width_image() -> None:
    with pytest.raises(ValueError, match="width must be positive"):
        render_sequences([()], 0)


def test_sequence_wider_than_image() -> None:
    with pytest.raises(ValueError, match="longer than 1 frames"):
        render_sequences([(None, None)], 1)
