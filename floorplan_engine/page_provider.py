from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import InputError
from .types import PageImage
from .utils import ensure_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageProvider:
    """Rasterizes a PDF into one PNG per page, after an initial page skip."""

    input_path: str
    pages_dir: Path
    dpi: int = 110
    skip_pages: int = 0
    file_prefix: str = "page"
    pad_pages: bool = True

    def render(self) -> list[PageImage]:
        try:
            import fitz  # PyMuPDF
        except Exception as e:  # pragma: no cover
            raise RuntimeError("PyMuPDF is required for PDF rendering. Install pymupdf.") from e

        pdf_path = Path(self.input_path)
        if not pdf_path.is_file():
            raise InputError(f"PDF not found: {pdf_path}")
        try:
            doc = fitz.open(str(pdf_path))
        except Exception as e:
            raise InputError(f"unreadable PDF {pdf_path.name}: {e}") from e

        with doc:
            total = doc.page_count
            pad = len(str(total)) if self.pad_pages else 1
            start = max(0, self.skip_pages)
            zoom = self.dpi / 72.0
            matrix = fitz.Matrix(zoom, zoom)

            logger.info("Rendering %s: %d page(s), skipping first %d", pdf_path.name, total, start)
            ensure_dir(self.pages_dir)

            pages: list[PageImage] = []
            for i in range(start, total):
                out_num = i + 1 - start
                page_id = f"{self.file_prefix}-{str(out_num).zfill(pad)}"
                abs_path = self.pages_dir / f"{page_id}.png"

                # Existing files are overwritten; pages_dir can be shared between runs.
                try:
                    pix = doc.load_page(i).get_pixmap(matrix=matrix, alpha=False)
                    pix.save(str(abs_path))
                except Exception as e:
                    raise InputError(f"failed to render page {i + 1} of {pdf_path.name}: {e}") from e
                logger.debug("Wrote page image %s", abs_path)

                pages.append(
                    PageImage(
                        page_index=len(pages),
                        page_id=page_id,
                        source_ref=f"{pdf_path.name}#page={i + 1}",
                        image_path=str(abs_path.resolve()),
                    )
                )

        logger.info("Rendered %d page image(s) to %s", len(pages), self.pages_dir)
        return pages
