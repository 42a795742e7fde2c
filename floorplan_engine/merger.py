from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .errors import MergeFailure
from .utils import list_images

logger = logging.getLogger(__name__)

# US Letter landscape, in points.
PAGE_WIDTH = 792
PAGE_HEIGHT = 612


@dataclass
class MergeResult:
    output_path: Path
    image_count: int
    image_files: list[str] = field(default_factory=list)


def merge_images_to_pdf(
    image_dir: str | Path,
    output_path: str | Path,
    *,
    page_width: float = PAGE_WIDTH,
    page_height: float = PAGE_HEIGHT,
) -> MergeResult:
    """One page per image (sorted by name), scaled to fit and centered."""
    import fitz  # PyMuPDF

    folder = Path(image_dir)
    if not folder.is_dir():
        raise MergeFailure(f"Output directory does not exist: {folder}")

    images = list_images(folder)
    if not images:
        raise MergeFailure(f"No image files found in output directory: {folder}")

    logger.info("Merging %d image(s) from %s", len(images), folder)
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)

    try:
        with fitz.open() as doc:
            for img_path in images:
                with fitz.open(str(img_path)) as img_doc:
                    rect = img_doc[0].rect
                scale = min(page_width / rect.width, page_height / rect.height)
                w, h = rect.width * scale, rect.height * scale
                x0 = (page_width - w) / 2
                y0 = (page_height - h) / 2

                page = doc.new_page(width=page_width, height=page_height)
                page.insert_image(fitz.Rect(x0, y0, x0 + w, y0 + h), filename=str(img_path))
                logger.debug("Added page: %s", img_path.name)
            doc.save(str(out))
    except Exception as e:
        raise MergeFailure(f"failed to assemble {out.name}: {e}") from e

    logger.info("Merged PDF saved to %s", out)
    return MergeResult(output_path=out, image_count=len(images), image_files=[p.name for p in images])
