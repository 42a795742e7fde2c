from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import InputError
from .normalizer import looks_like_all_caps
from .types import Detection, OCRLine

logger = logging.getLogger(__name__)

MAX_TOP_CROP_RATIO = 0.1


def _poly_to_xyxy(poly: Sequence[Sequence[float]]) -> tuple[int, int, int, int]:
    xs = [p[0] for p in poly]
    ys = [p[1] for p in poly]
    return int(min(xs)), int(min(ys)), int(max(xs)), int(max(ys))


def heading_crop_box(
    width: int,
    height: int,
    *,
    top_crop_ratio: float,
    inner_band_ratio: float,
    inner_width_ratio: float,
) -> tuple[int, int, int, int]:
    """Centered slice of the top band of a page, as (x0, y0, x1, y1)."""
    crop_h = max(1, round(height * top_crop_ratio))
    band_h = max(1, round(crop_h * inner_band_ratio))
    top = max(0, min(height - band_h, round(max(0, crop_h - band_h) / 2)))

    inner_w = max(1, round(width * inner_width_ratio))
    left = max(0, min(width - inner_w, round(max(0, width - inner_w) / 2)))
    return left, top, left + inner_w, top + band_h


def select_heading(
    lines: Sequence[OCRLine],
    *,
    min_confidence: float,
    fallback_text: str | None = None,
) -> tuple[str | None, float, bool]:
    """Pick the heading line: (text, confidence, used_fallback).

    Lines at or above min_confidence are eligible; all-caps lines win when any
    exist. Ranking is by confidence, with near-ties (<= 0.1) going to the
    longer text. With no eligible line, fallback_text is returned at
    confidence 0 when given.
    """
    eligible = [ln for ln in lines if ln.text.strip() and ln.confidence >= min_confidence]
    caps = [ln for ln in eligible if looks_like_all_caps(ln.text)]
    pool = caps or eligible

    best: OCRLine | None = None
    for ln in pool:
        if best is None:
            best = ln
            continue
        delta = ln.confidence - best.confidence
        if delta > 0.1 or (abs(delta) <= 0.1 and len(ln.text.strip()) > len(best.text.strip())):
            best = ln

    if best is not None:
        return best.text.strip(), float(best.confidence), False

    fallback = (fallback_text or "").strip()
    if fallback:
        return fallback, 0.0, True
    return None, 0.0, False


@dataclass
class HeadingDetector:
    """Reads the room heading printed at the top-center of a board page."""

    lang: str = "en"
    top_crop_ratio: float = 0.1
    inner_band_ratio: float = 1.0
    inner_width_ratio: float = 0.25
    min_confidence: float = 45.0
    clean: bool = True
    fallback_to_full_text: bool = True
    preview_dir: Path | None = None
    _reader: Any | None = field(default=None, repr=False)

    @classmethod
    def from_config(cls, detect_cfg: dict[str, Any], *, preview_dir: Path | None = None) -> HeadingDetector:
        return cls(
            lang=str(detect_cfg.get("lang", "en")),
            top_crop_ratio=float(detect_cfg.get("top_crop_ratio", 0.1)),
            inner_band_ratio=float(detect_cfg.get("inner_band_ratio", 1.0)),
            inner_width_ratio=float(detect_cfg.get("inner_width_ratio", 0.25)),
            min_confidence=float(detect_cfg.get("min_confidence", 45)),
            clean=bool(detect_cfg.get("clean", True)),
            fallback_to_full_text=bool(detect_cfg.get("fallback_to_full_text", True)),
            preview_dir=preview_dir if detect_cfg.get("preview_crop", False) else None,
        )

    def _validate(self) -> float:
        if self.top_crop_ratio <= 0:
            raise ValueError("top_crop_ratio must be greater than 0.")
        if not 0 < self.inner_band_ratio <= 1:
            raise ValueError("inner_band_ratio must be between 0 and 1.")
        if not 0 < self.inner_width_ratio <= 1:
            raise ValueError("inner_width_ratio must be between 0 and 1.")
        effective = min(self.top_crop_ratio, MAX_TOP_CROP_RATIO)
        if effective != self.top_crop_ratio:
            logger.debug("top_crop_ratio %.3f clamped to %.3f", self.top_crop_ratio, effective)
        return effective

    def _preprocess(self, crop: Image.Image) -> np.ndarray:
        """Greyscale, stretch contrast, sharpen."""
        gray = cv2.cvtColor(np.array(crop.convert("RGB")), cv2.COLOR_RGB2GRAY)
        norm = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)
        kernel = np.array([[0, -1, 0], [-1, 5, -1], [0, -1, 0]])
        return cv2.filter2D(norm, -1, kernel)

    def _read_lines(self, arr: np.ndarray) -> list[OCRLine]:
        if self._reader is None:
            import easyocr

            self._reader = easyocr.Reader(self.lang.split(","), gpu=False)

        lines = []
        for bbox, text, confidence in self._reader.readtext(arr):
            lines.append(OCRLine(text=str(text), confidence=float(confidence) * 100.0, bbox_xyxy=_poly_to_xyxy(bbox)))
        return lines

    def detect(self, image_path: str | Path, page_id: str | None = None) -> Detection:
        top_ratio = self._validate()
        path = Path(image_path)
        page_id = page_id or path.stem

        try:
            with Image.open(path) as img:
                img.load()
                page = img.convert("RGB")
        except (FileNotFoundError, UnidentifiedImageError, OSError) as e:
            raise InputError(f"unreadable page image {path}: {e}") from e

        box = heading_crop_box(
            page.width,
            page.height,
            top_crop_ratio=top_ratio,
            inner_band_ratio=self.inner_band_ratio,
            inner_width_ratio=self.inner_width_ratio,
        )
        arr = self._preprocess(page.crop(box))

        preview_path = None
        if self.preview_dir is not None:
            self.preview_dir.mkdir(parents=True, exist_ok=True)
            preview_path = str(self.preview_dir / f"{page_id}-crop.png")
            cv2.imwrite(preview_path, arr)

        lines = self._read_lines(arr)
        # Reading order: top to bottom, then left to right.
        ordered = sorted(lines, key=lambda ln: (ln.bbox_xyxy[1], ln.bbox_xyxy[0]))
        full_text = " ".join(ln.text.strip() for ln in ordered if ln.text.strip())
        logger.debug("%s: OCR lines %s", page_id, [(ln.text, round(ln.confidence, 1)) for ln in lines])

        raw, confidence, used_fallback = select_heading(
            lines,
            min_confidence=self.min_confidence,
            fallback_text=full_text if self.fallback_to_full_text else None,
        )
        if raw is None:
            logger.warning("%s: no suitable OCR heading", page_id)
            return Detection.missing()

        detection = Detection.from_heading(
            raw,
            confidence,
            clean=self.clean,
            used_fallback=used_fallback,
            preview_path=preview_path,
        )
        logger.info(
            "%s: heading=%r (raw=%r, confidence=%.1f%s)",
            page_id,
            detection.room_name,
            detection.room_name_raw,
            detection.confidence,
            ", full-text fallback" if used_fallback else "",
        )
        return detection
