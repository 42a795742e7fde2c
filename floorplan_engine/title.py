from __future__ import annotations

from pathlib import Path

from PIL import Image, ImageDraw, ImageFont, ImageColor

_FONT_CANDIDATES = ("Inter-Bold.ttf", "DejaVuSans-Bold.ttf", "arialbd.ttf", "Arial Bold.ttf", "arial.ttf")


def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    for name in _FONT_CANDIDATES:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def add_title_to_image(
    image_path: str | Path,
    text: str,
    *,
    output_path: str | Path | None = None,
    margin_ratio: float = 0.06,
    font_size_ratio: float = 0.08,
    stroke_width: int = 3,
    fill_color: str = "#ffffff",
    stroke_color: str = "#000000a6",
    padding: int = 24,
) -> Path:
    """Draw a stroked title near the top-left of an image.

    Writes to output_path, or back over image_path when omitted.
    """
    if not text or not text.strip():
        raise ValueError("text must be a non-empty string")

    src = Path(image_path)
    dst = Path(output_path) if output_path else src

    with Image.open(src) as img:
        base = img.convert("RGBA")

    h = base.height
    margin = round(h * margin_ratio)
    font_size = max(24, round(h * font_size_ratio))
    font = _load_font(font_size)

    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    draw.text(
        (padding, margin),
        text.strip(),
        font=font,
        fill=ImageColor.getrgb(fill_color),
        stroke_width=stroke_width,
        stroke_fill=ImageColor.getrgb(stroke_color),
    )

    out = Image.alpha_composite(base, layer)
    if dst.suffix.lower() in (".jpg", ".jpeg"):
        out = out.convert("RGB")
    dst.parent.mkdir(parents=True, exist_ok=True)
    out.save(dst)
    return dst
