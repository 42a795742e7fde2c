from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .normalizer import clean_heading, normalize_room_name


@dataclass(frozen=True)
class PageImage:
    page_index: int  # 0-based within the processed subset
    page_id: str  # e.g. page-05
    source_ref: str  # e.g. board.pdf#page=9
    image_path: str  # absolute path of the rendered PNG


@dataclass(frozen=True)
class Detection:
    room_name_raw: str | None
    confidence: float
    normalized: str | None
    room_name: str | None = None  # cleaned display heading
    used_fallback: bool = False
    error: str | None = None
    preview_path: str | None = None

    @classmethod
    def from_heading(
        cls,
        raw: str | None,
        confidence: float,
        *,
        clean: bool = True,
        used_fallback: bool = False,
        preview_path: str | None = None,
    ) -> Detection:
        raw = raw.strip() if raw else None
        if not raw:
            return cls.missing()
        return cls(
            room_name_raw=raw,
            confidence=float(confidence),
            normalized=normalize_room_name(raw),
            room_name=clean_heading(raw) if clean else raw,
            used_fallback=used_fallback,
            preview_path=preview_path,
        )

    @classmethod
    def missing(cls, error: str | None = None) -> Detection:
        return cls(room_name_raw=None, confidence=0.0, normalized=None, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "room_name_raw": self.room_name_raw,
            "room_name": self.room_name,
            "confidence": self.confidence,
            "normalized": self.normalized,
            "used_fallback": self.used_fallback,
            "error": self.error,
            "preview_path": self.preview_path,
        }


@dataclass(frozen=True)
class Group:
    group_id: int  # 1-based, in first-page order
    page_indices: tuple[int, ...]
    pages: tuple[str, ...]
    room_label: str | None
    normalized_name: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "page_indices": list(self.page_indices),
            "pages": list(self.pages),
            "room_label": self.room_label,
            "normalized_name": self.normalized_name,
        }


@dataclass(frozen=True)
class Description:
    narrative: str
    geometry: dict[str, Any] | None
    raw: str
    geometry_text: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "narrative": self.narrative,
            "geometry": self.geometry,
            "raw": self.raw,
            "geometry_text": self.geometry_text,
        }


@dataclass(frozen=True)
class GroupOutcome:
    render_path: str
    description: Description
    title: str | None = None


@dataclass(frozen=True)
class PageResult:
    page_index: int
    page_image: str
    group_id: int
    grouped_with: tuple[str, ...] = ()
    room_name: str | None = None
    room_heading_raw: str | None = None
    render_path: str | None = None
    description: Description | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_index": self.page_index,
            "page_image": self.page_image,
            "group_id": self.group_id,
            "grouped_with": list(self.grouped_with),
            "room_name": self.room_name,
            "room_heading_raw": self.room_heading_raw,
            "render_path": self.render_path,
            "description": self.description.to_dict() if self.description else None,
            "error": self.error,
            "error_type": self.error_type,
        }


@dataclass
class OCRLine:
    text: str
    confidence: float  # 0..100
    bbox_xyxy: tuple[int, int, int, int] = field(default=(0, 0, 0, 0))
