from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from openai import AsyncOpenAI

from .config import resolve_api_key
from .errors import DescriptionError, InputError
from .prompts import GEOMETRY_MARKER, build_description_prompt
from .types import Description
from .utils import image_data_url, preview

logger = logging.getLogger(__name__)


def response_text(response: Any) -> str | None:
    """Text of a Responses API result, whichever shape it came back in."""
    text = getattr(response, "output_text", None)
    if text is None and isinstance(response, dict):
        text = response.get("output_text")
    if text:
        return str(text).strip() or None

    content = getattr(response, "content", None)
    if content is None and isinstance(response, dict):
        content = response.get("content")
    pieces = []
    for item in content or []:
        piece = item.get("text") if isinstance(item, dict) else getattr(item, "text", None)
        if piece:
            pieces.append(str(piece))
    joined = "\n".join(pieces).strip()
    return joined or None


def parse_description(text: str) -> Description:
    """Split model output into narrative and the GEOMETRY_JSON block."""
    trimmed = text.strip()
    marker_at = trimmed.find(GEOMETRY_MARKER)
    if marker_at == -1:
        logger.warning("%s marker not found in description", GEOMETRY_MARKER)
        return Description(narrative=trimmed, geometry=None, raw=trimmed)

    start = trimmed.find("{", marker_at)
    end = trimmed.rfind("}")
    if start == -1 or end <= start:
        logger.warning("No JSON block after %s", GEOMETRY_MARKER)
        return Description(narrative=trimmed, geometry=None, raw=trimmed)

    narrative = trimmed[:marker_at].strip()
    json_text = trimmed[start : end + 1]
    try:
        geometry = json.loads(json_text)
    except json.JSONDecodeError as e:
        logger.error("Failed to parse geometry JSON: %s", e)
        return Description(narrative=narrative, geometry=None, raw=trimmed)

    if not isinstance(geometry, dict):
        return Description(narrative=narrative, geometry=None, raw=trimmed)
    return Description(narrative=narrative, geometry=geometry, raw=trimmed, geometry_text=json_text)


@dataclass
class DescriptionGenerator:
    """Asks a vision LLM for a quantitative description of one room."""

    model: str = "gpt-4o-mini"
    api_key: str | None = None
    key_file: str | None = None
    settings_key: str = ""
    prompt: str | None = None
    _client: AsyncOpenAI | None = field(default=None, repr=False)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            key = resolve_api_key(
                self.api_key,
                key_file=self.key_file,
                fallback_files=("gpt-key.txt", "key.txt"),
                env_var="OPENAI_API_KEY",
                settings_value=self.settings_key,
            )
            self._client = AsyncOpenAI(api_key=key)
        return self._client

    async def describe(self, image_paths: Sequence[str | Path], room_context: dict[str, Any] | None = None) -> Description:
        if not image_paths:
            raise InputError("at least one image path is required")

        images = []
        for p in image_paths:
            path = Path(p)
            if not path.is_file():
                raise InputError(f"page image not readable: {path}")
            images.append({"type": "input_image", "image_url": image_data_url(path)})

        prompt = self.prompt or build_description_prompt(room_context)
        logger.info("Describing %d image(s) with %s (prompt %d chars)", len(images), self.model, len(prompt))

        response = await self._get_client().responses.create(
            model=self.model,
            input=[{"role": "user", "content": [{"type": "input_text", "text": prompt}, *images]}],
        )

        text = response_text(response)
        if not text:
            raise DescriptionError("No textual output returned from the description model.")

        description = parse_description(text)
        logger.debug("Narrative preview: %s", preview(description.narrative))
        return description
