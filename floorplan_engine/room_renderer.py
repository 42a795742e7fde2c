from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

from .config import EngineConfig, Settings
from .describe import DescriptionGenerator
from .image_gen import ImageGenerator, ReferenceImage
from .normalizer import display_name
from .prompts import build_render_prompt
from .title import add_title_to_image
from .types import Detection, Group, GroupOutcome
from .utils import image_mime_type

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Room"


def resolve_title(group: Group, detections: Sequence[Detection]) -> str:
    """Title for a group's render: first page's raw heading, then the group
    label, then the first page's cleaned heading, then the title-cased key."""
    first = detections[group.page_indices[0]] if group.page_indices else None
    candidates = [
        first.room_name_raw if first else None,
        group.room_label,
        first.room_name if first else None,
        display_name(group.normalized_name),
    ]
    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    return DEFAULT_TITLE


def build_room_context(group: Group, detections: Sequence[Detection]) -> dict[str, Any]:
    return {
        "room_name": group.room_label,
        "normalized_name": group.normalized_name,
        "headings": [
            {
                "page_image": page,
                "room_name": detections[i].room_name,
                "raw_text": detections[i].room_name_raw,
                "confidence": detections[i].confidence,
            }
            for i, page in zip(group.page_indices, group.pages)
        ],
    }


def render_filename(pages: Sequence[str]) -> str:
    stem = Path(pages[0]).stem
    return f"{stem}{'-group' if len(pages) > 1 else ''}-render.png"


@dataclass
class RoomRenderer:
    """The per-group pipeline: describe, generate image, overlay title."""

    output_dir: Path
    describer: DescriptionGenerator
    generator: ImageGenerator
    title_cfg: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_config(cls, output_dir: Path, cfg: EngineConfig, settings: Settings | None = None) -> RoomRenderer:
        settings = settings or Settings()
        return cls(
            output_dir=output_dir,
            describer=DescriptionGenerator(
                model=str(cfg.describe.get("model", "gpt-4o-mini")),
                key_file=cfg.describe.get("key_file"),
                settings_key=settings.openai_api_key,
            ),
            generator=ImageGenerator(
                model=str(cfg.generate.get("model", "gemini-2.5-flash-image")),
                key_file=cfg.generate.get("key_file"),
                settings_key=settings.gemini_api_key,
                negative_prompt=cfg.generate.get("negative_prompt"),
            ),
            title_cfg=dict(cfg.title),
        )

    async def render_group(self, group: Group, detections: Sequence[Detection]) -> GroupOutcome:
        if not group.pages:
            raise ValueError(f"group {group.group_id} has no pages")

        room_context = build_room_context(group, detections)
        description = await self.describer.describe(list(group.pages), room_context)

        references = []
        for page in group.pages:
            data = await asyncio.to_thread(Path(page).read_bytes)
            references.append(ReferenceImage(mime_type=image_mime_type(page), data=data))

        prompt = build_render_prompt(description, room_context, [Path(p).name for p in group.pages])
        image_bytes = await self.generator.generate(prompt, references)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        render_path = self.output_dir / render_filename(group.pages)
        await asyncio.to_thread(render_path.write_bytes, image_bytes)

        title = resolve_title(group, detections)
        logger.info("Group %d: overlaying title %r onto %s", group.group_id, title, render_path.name)
        await asyncio.to_thread(add_title_to_image, render_path, title, **self.title_cfg)

        return GroupOutcome(render_path=str(render_path), description=description, title=title)
