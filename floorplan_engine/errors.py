"""Error taxonomy for the render pipeline.

InputError is always fatal. DetectionFailure and GroupPipelineFailure are
recoverable under continue-on-error. MergeFailure and CleanupFailure never
abort a run.
"""

from __future__ import annotations

from typing import Any


class FloorplanError(Exception):
    """Base class for all engine errors."""


class InputError(FloorplanError):
    """Missing or unreadable source document or page image."""


class ConfigError(FloorplanError):
    """Missing API key or invalid engine setting."""


class DetectionFailure(FloorplanError):
    def __init__(self, page_id: str, message: str):
        super().__init__(f"{page_id}: {message}")
        self.page_id = page_id


class DescriptionError(FloorplanError):
    """The description model returned nothing usable."""


class ImageGenerationError(FloorplanError):
    """The image model returned no image payload."""


class GroupPipelineFailure(FloorplanError):
    """A group's describe/generate/overlay pipeline failed.

    `results` holds the complete per-page slot list when the worker pool
    raises this after draining.
    """

    def __init__(self, group_id: int, message: str, results: list[Any] | None = None):
        super().__init__(f"group {group_id}: {message}")
        self.group_id = group_id
        self.results = results
        self.report: Any = None


class MergeFailure(FloorplanError):
    pass


class CleanupFailure(FloorplanError):
    pass
