from __future__ import annotations

import numpy as np
from PIL import Image


def dominant_color(img: Image.Image, sample: int = 64, colors: int = 5) -> str:
    """Most common color of a downsampled, quantized copy of the image as "#rrggbb"."""
    small = img.convert("RGB")
    small.thumbnail((sample, sample), Image.LANCZOS)
    quantized = small.quantize(colors=colors, method=Image.Quantize.MEDIANCUT)
    counts = np.bincount(np.asarray(quantized).ravel())
    top = int(np.argmax(counts))
    palette = quantized.getpalette() or []
    r, g, b = palette[top * 3 : top * 3 + 3] or (0, 0, 0)
    return f"#{r:02x}{g:02x}{b:02x}"
