"""
Rendering and export helpers for the side view.

The Streamlit UI and the batch script both draw through render_side_view();
the world -> pixel mapping is left to matplotlib.

License: MIT
"""

from __future__ import annotations

from io import BytesIO

import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.patches import Rectangle

from .elements import ElementKind
from .registry import ElementRegistry

BAR_STYLE = {"facecolor": "darkblue", "edgecolor": "black", "linewidth": 0.8}
VETO_STYLE = {"facecolor": "steelblue", "edgecolor": "black", "linewidth": 0.6}
HIGHLIGHT_STYLE = {"facecolor": "orange", "edgecolor": "red", "linewidth": 1.2}


def render_side_view(ax, registry: ElementRegistry, *, annotate: bool = True, highlight=None) -> None:
    """
    Draw every bar and veto of the registry on ax, in world coordinates.

    highlight: optional element tag (e.g. from registry.locate) drawn in
    a distinct style.
    """
    highlight = str(highlight) if highlight is not None else None

    for element in registry:
        r = element.rect
        if str(element.tag) == highlight:
            style = HIGHLIGHT_STYLE
        else:
            style = BAR_STYLE if element.kind == ElementKind.BAR else VETO_STYLE
        ax.add_patch(Rectangle((r.x, r.y), r.width, r.height, **style))

        if annotate:
            cx, cy = r.center
            text = element.annotation() if element.kind == ElementKind.BAR else str(element.tag)
            ax.text(
                cx,
                cy,
                text,
                ha="center",
                va="center",
                fontsize=5 if element.kind == ElementKind.BAR else 4,
                color="white" if element.kind == ElementKind.BAR else "black",
            )

    b = registry.layout.bounds
    ax.set_xlim(b.x, b.max_x)
    ax.set_ylim(b.y, b.max_y)
    ax.set_aspect("equal")
    ax.set_xticks([])
    ax.set_yticks([])


def side_view_figure(registry: ElementRegistry, *, title: str, signature: str = "", annotate: bool = True, highlight=None):
    """Return a matplotlib figure with the side view and optional signature."""
    fig, ax = plt.subplots(figsize=(6, 6))
    render_side_view(ax, registry, annotate=annotate, highlight=highlight)
    ax.set_title(title)

    if signature:
        ax.text(
            0.99,
            0.01,
            signature,
            transform=ax.transAxes,
            ha="right",
            va="bottom",
            fontsize=6,
        )

    fig.tight_layout()
    return fig


def side_view_to_png_bytes(
    registry: ElementRegistry,
    *,
    title: str,
    signature: str = "",
    annotate: bool = True,
    dpi: int = 150,
) -> bytes:
    """Render the side view to PNG bytes."""
    fig = side_view_figure(registry, title=title, signature=signature, annotate=annotate)
    buf = BytesIO()
    fig.savefig(buf, format="png", dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    buf.seek(0)
    return buf.read()


def frame_to_csv_bytes(df: pd.DataFrame) -> bytes:
    """Serialize a region / calibration table to UTF-8 CSV bytes."""
    return df.to_csv(index=False).encode("utf-8")
