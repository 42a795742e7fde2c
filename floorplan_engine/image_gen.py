from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from google import genai
from google.genai import types

from .config import resolve_api_key
from .errors import ImageGenerationError
from .utils import preview

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReferenceImage:
    mime_type: str
    data: bytes


def _get(obj: Any, *names: str) -> Any:
    """First present attribute/key among names (SDK objects or plain dicts)."""
    for name in names:
        value = obj.get(name) if isinstance(obj, dict) else getattr(obj, name, None)
        if value is not None:
            return value
    return None


def _content_parts(response: Any) -> list[Any]:
    for holder in (_get(response, "response"), response):
        if holder is None:
            continue
        candidates = _get(holder, "candidates") or []
        if candidates:
            content = _get(candidates[0], "content")
            parts = _get(content, "parts") if content is not None else None
            if parts:
                return list(parts)
    return list(_get(response, "parts") or [])


def _decode(data: Any) -> bytes | None:
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str) and data:
        try:
            return base64.b64decode(data, validate=True)
        except binascii.Error:
            return None
    return None


def extract_inline_image(response: Any) -> bytes:
    """Map every accepted response shape to image bytes.

    Raises ImageGenerationError carrying any text the model returned instead
    (e.g. a content-policy refusal).
    """
    parts = _content_parts(response)
    for part in parts:
        inline = _get(part, "inline_data", "inlineData")
        if inline is None:
            continue
        data = _decode(_get(inline, "data"))
        if data:
            return data

    said = "\n".join(str(t) for t in (_get(p, "text") for p in parts) if t).strip()
    raise ImageGenerationError(
        "Image generation completed but no image data was provided. "
        f"Model said: {said or 'No inline image data returned.'}"
    )


@dataclass
class ImageGenerator:
    model: str = "gemini-2.5-flash-image"
    api_key: str | None = None
    key_file: str | None = None
    settings_key: str = ""
    negative_prompt: str | None = None
    _client: genai.Client | None = field(default=None, repr=False)

    def _get_client(self) -> genai.Client:
        if self._client is None:
            key = resolve_api_key(
                self.api_key,
                key_file=self.key_file,
                fallback_files=("key.txt", "gemini-key.txt"),
                env_var="GEMINI_API_KEY",
                settings_value=self.settings_key,
            )
            self._client = genai.Client(api_key=key)
        return self._client

    async def generate(self, prompt: str, reference_images: Sequence[ReferenceImage] = ()) -> bytes:
        if not prompt:
            raise ValueError("prompt is required")

        text = f"{prompt}\n\nAvoid: {self.negative_prompt}" if self.negative_prompt else prompt
        contents: list[Any] = [text]
        contents += [types.Part.from_bytes(data=ref.data, mime_type=ref.mime_type) for ref in reference_images]

        logger.info("Generating image with %s (%d reference image(s))", self.model, len(reference_images))
        logger.debug("Render prompt preview: %s", preview(prompt))
        response = await self._get_client().aio.models.generate_content(model=self.model, contents=contents)
        return extract_inline_image(response)
