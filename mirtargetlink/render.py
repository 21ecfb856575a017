"""Plain-text rendering of result tables for the command line."""

from __future__ import annotations

import textwrap
from itertools import zip_longest
from typing import Any, Dict, Mapping, Sequence

from mirtargetlink.engine.extract import INTERACTION_SHAPE, NODE_SHAPE, RowShape

INTERACTION_WIDTHS = (22, 22, 10, 12, 15, 12)
NODE_WIDTHS = (15, 20, 22, 12, 65)


def format_table(headers: Sequence[str], rows: Sequence[Sequence[str]], widths: Sequence[int]) -> str:
    border = "+" + "+".join("-" * (width + 2) for width in widths) + "+"
    lines = [border, _format_row(headers, widths), border]
    for row in rows:
        lines.append(_format_row(row, widths))
    lines.append(border)
    return "\n".join(lines)


def _format_row(cells: Sequence[str], widths: Sequence[int]) -> str:
    wrapped = [textwrap.wrap(str(cell), width) or [""] for cell, width in zip(cells, widths)]
    out = []
    for parts in zip_longest(*wrapped, fillvalue=""):
        out.append("| " + " | ".join(part.ljust(width) for part, width in zip(parts, widths)) + " |")
    return "\n".join(out)


def _rows(records: Sequence[Mapping[str, Any]], shape: RowShape) -> list[list[str]]:
    fields = shape.factory._fields
    return [[str(record.get(name, "")) for name in fields] for record in records]


def render_result(payload: Dict[str, Any]) -> str:
    if not payload.get("success"):
        error = payload.get("error") or {}
        return f"ERROR [{error.get('kind', 'unknown')}]: {payload.get('message', '')}"

    sections = [payload.get("message", "")]
    interactions = payload.get("interactions") or []
    nodes = payload.get("nodes") or []
    if interactions:
        sections.append(f"Interaction Table (Top {len(interactions)}):")
        sections.append(format_table(INTERACTION_SHAPE.headers, _rows(interactions, INTERACTION_SHAPE), INTERACTION_WIDTHS))
    if nodes:
        sections.append(f"Node Annotation Table (Top {len(nodes)}):")
        sections.append(format_table(NODE_SHAPE.headers, _rows(nodes, NODE_SHAPE), NODE_WIDTHS))
    for warning in payload.get("warnings") or []:
        sections.append(f"warning: {warning}")
    return "\n\n".join(section for section in sections if section)
