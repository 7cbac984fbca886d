from __future__ import annotations

from typing import Any, Mapping

LABEL_WIDTH = 48


def render_label(label: Mapping[str, Any], width: int = LABEL_WIDTH) -> str:
    """Plain-text safety data sheet label ready for printing."""
    lines = [str(label.get("productName") or label.get("filename") or "")]
    lines.append(f"Company: {label.get('companyCode') or ''}")
    if label.get("department"):
        lines.append(f"Department: {label['department']}")
    if label.get("site"):
        lines.append(f"Site: {label['site']}")
    lines.append(f"Document: {label.get('filename') or ''}")

    inner = max(width - 4, max(len(line) for line in lines))
    border = "+" + "-" * (inner + 2) + "+"
    body = [f"| {line.ljust(inner)} |" for line in lines]
    return "\n".join([border, *body, border])
