"""Prompt text for the description and render models."""

from __future__ import annotations

import json
from typing import Any, Sequence

from .types import Description

GEOMETRY_MARKER = "GEOMETRY_JSON"

GEOMETRY_SCHEMA = (
    '{ "room": { "length_ft": number, "width_ft": number, "ceiling_ft": number }, '
    '"openings": [{ "type": "door|window", "wall": "north|south|east|west", "width_ft": number, '
    '"height_ft": number, "offset_ft": number }], '
    '"fixtures": [{ "name": "string", "quantity": number, "dimensions_ft": [length, depth, height], '
    '"position_ft": { "from_west": number, "from_north": number }, "orientation": "faces X wall" }] }'
)


def heading_label(heading: dict[str, Any], index: int) -> str:
    return heading.get("raw_text") or heading.get("room_name") or f"Unlabeled Page {index + 1}"


def build_description_prompt(room_context: dict[str, Any] | None = None) -> str:
    ctx = room_context or {}
    parts = [
        "You are an architectural visualization assistant.",
        "You receive a design board page composed of:",
        "- The primary floorplan or elevation in the main panel (usually upper-left).",
        "- Adjacent reference imagery showing the furniture, fixtures, artwork, or decor planned for the room.",
        "- A colour/material palette swatch panel in the lower-right corner.",
        "Some rooms may include multiple board pages; when more than one image is supplied they describe the "
        "same room. Integrate every supplied reference so the deliverable covers all furniture, finishes, and "
        "palette callouts across the pages.",
    ]

    if ctx.get("room_name"):
        parts.append(f'The overall room heading detected for this set is "{ctx["room_name"]}".')

    headings = ctx.get("headings") or []
    if headings:
        parts.append(
            "The supplied images correspond to the same room but cover different facets. "
            "Use every page listed below when compiling the specification:"
        )
        parts += [f'Page {i + 1} heading: "{heading_label(h, i)}"' for i, h in enumerate(headings)]
        parts.append(
            "Treat sub-headings such as bedding, artwork, lighting, etc. as additive requirements for the "
            "same room; do not treat them as separate spaces."
        )

    parts += [
        "Produce a comprehensive, quantitative brief that will be fed to a 3D generative model to recreate "
        "this exact room.",
        "Explicitly include:",
        "- Overall room dimensions (length, width, ceiling height) and orientation.",
        "- For each wall, note length, directions, and any openings (doors, windows) with approximate "
        "widths/heights and offsets.",
        "- Enumerate every furniture/fixture piece shown in the reference images: style, materials, colors, "
        "approximate dimensions, and intended placement. Call out exact quantities.",
        "- Dimension labels on the board may be read to infer size but must not appear in the final render.",
        "- Integrate the colour palette: wall paint, trim, flooring, textiles, accent colors, metals, artwork tones.",
        "- Lighting details (fixtures, placement, colour temperature) plus accessory/prop notes.",
        "- The intended camera/viewpoint for the hero render, with each piece located relative to that camera.",
        f"- After the narrative, output a JSON object under the heading `{GEOMETRY_MARKER}` with the precise "
        "layout data in feet, following this schema:",
        GEOMETRY_SCHEMA,
        "- Do not include any extra commentary after the JSON block.",
        f"Respond with the narrative first, then the line `{GEOMETRY_MARKER}` on its own line, followed "
        "immediately by the JSON object.",
    ]
    return " ".join(parts)


_RENDER_RULES = """\
Recreate this interior exactly as documented in the board: match the floorplan layout, all referenced furniture and artwork, materials, and the colour palette swatches.
Do not add or remove furniture. The number of chairs, tables, and every other item must match the specification and imagery exactly.

FURNITURE PLACEMENT AND ORIENTATION:
- Furniture from the reference images may be rotated or realigned to fit the room layout naturally.
- Keep the same pieces and their relative relationships; follow the floorplan geometry.

DO NOT INCLUDE IN OUTPUT:
- No room names, labels, titles, captions, watermarks or text of any kind.
- No floor plans, blueprints, palette swatches or other design board elements.
- No white or black margins; fill the frame with the interior scene.

Render a full-width, realistic 3D hero shot of the staged room from the board's specified camera angle, showing floor, walls, ceiling context and every described piece."""


def build_render_prompt(
    description: Description,
    room_context: dict[str, Any] | None = None,
    reference_names: Sequence[str] = (),
) -> str:
    ctx = room_context or {}
    lines: list[str] = []

    if ctx.get("room_name"):
        lines.append(f"Room heading: {ctx['room_name']}")

    headings = ctx.get("headings") or []
    if len(headings) > 1:
        lines.append("This render must integrate every board page in this set. Summary of page headings:")
        lines += [f"- {heading_label(h, i)}" for i, h in enumerate(headings)]
        lines.append("Treat each heading above as requirements for the same room; merge them into one cohesive scene.")

    lines.append(description.narrative or description.raw)
    lines.append("")
    lines.append("STRICT GEOMETRY SPECIFICATION (do not deviate):")
    if description.geometry_text:
        lines.append(description.geometry_text)
    elif description.geometry is not None:
        lines.append(json.dumps(description.geometry, indent=2))
    else:
        lines.append("No geometry JSON provided.")
    lines.append("")
    lines.append(_RENDER_RULES)

    if len(reference_names) > 1:
        lines.append(
            f"Multiple board pages are attached ({len(reference_names)}). "
            f"Integrate every reference image listed here: {', '.join(reference_names)}"
        )
    return "\n".join(lines)
