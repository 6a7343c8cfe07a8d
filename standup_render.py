"""Draw ranked stand-up sequences as a PNG: one row per sequence, one column per frame."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Dict, Optional, Sequence, Tuple, Union

from PIL import Image


Color = Tuple[int, int, int]
Inputs = Sequence[Optional[bool]]

COLORS: Dict[Optional[bool], Color] = {
    None: (255, 255, 255),
    True: (0, 255, 0),
    False: (255, 0, 0),
}


def render_sequences(sequences: Sequence[Inputs], width: int) -> Image.Image:
    """Best sequence on top; frames run left to right."""
    if not sequences:
        raise ValueError("no sequences to render")
    if width <= 0:
        raise ValueError("width must be positive")
    image = Image.new("RGB", (width, len(sequences)), COLORS[None])
    pixels = image.load()
    for y, inputs in enumerate(sequences):
        if len(inputs) > width:
            raise ValueError(f"sequence {y} is longer than {width} frames")
        for x, value in enumerate(inputs):
            pixels[x, y] = COLORS[value]
    return image


def write_png(sequences: Sequence[Inputs], width: int, target: Union[str, Path, BinaryIO]) -> None:
    render_sequences(sequences, width).save(target, format="PNG")
