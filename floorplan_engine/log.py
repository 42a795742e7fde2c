from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=_FORMAT)
    # Third-party HTTP clients are chatty at INFO.
    for name in ("httpx", "httpcore", "openai", "google_genai"):
        logging.getLogger(name).setLevel(logging.WARNING)
