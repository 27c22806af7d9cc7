"""
Figure wrapper shared by the batch CLI and the Streamlit app.

The CLI writes figures next to the result tables; the app shows them with
``st.pyplot`` and offers the PNG bytes as a download.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Literal, Optional

import matplotlib.figure
import matplotlib.pyplot as plt

OutputFormat = Literal["png", "pdf", "svg"]
_FORMATS = ("png", "pdf", "svg")


@dataclass
class Figure:
    """
    A drawn plot and what it was drawn from.

    Attributes
    ----------
    fig : matplotlib.figure.Figure
    title : str
    description : str
        One sentence for captions and run manifests
    metadata : dict
        Inputs of the plot (sex, thresholds, counts); ``created_at`` is
        stamped on construction unless supplied
    """
    fig: matplotlib.figure.Figure
    title: str
    description: str
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.metadata.setdefault("created_at", datetime.now().isoformat(timespec="seconds"))

    def _render(self, target, format: str, dpi: int, **kwargs) -> None:
        self.fig.savefig(target, format=format, dpi=dpi, bbox_inches="tight", facecolor="white", **kwargs)

    def save(
        self,
        path: Path | str,
        format: Optional[OutputFormat] = None,
        dpi: int = 300,
        **kwargs
    ) -> Path:
        """Write to *path*; the format follows the extension and falls back to PNG."""
        path = Path(path)
        if format is None:
            suffix = path.suffix.lstrip(".").lower()
            format = suffix if suffix in _FORMATS else "png"
        path.parent.mkdir(parents=True, exist_ok=True)
        self._render(path, format, dpi, **kwargs)
        return path

    def to_png_bytes(self, dpi: int = 150) -> bytes:
        buf = io.BytesIO()
        self._render(buf, "png", dpi)
        return buf.getvalue()

    def close(self):
        plt.close(self.fig)

    def __repr__(self) -> str:
        return f"Figure({self.title!r})"
