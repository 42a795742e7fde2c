"""Board PDF to interior render engine.

Rasterizes design-board PDF pages, reads each page's room heading, groups
consecutive pages of the same room, renders one interior image per room with
a description model and an image model, and merges the renders into a PDF.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
