"""
Colors and matplotlib/seaborn settings for the analysis plots.

RA samples are blue and controls orange. Sexes are violet (female) and teal
(male). In volcano plots, genes up in RA share the male teal and genes down
in RA the control orange; genes failing the thresholds are slate grey.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import matplotlib.pyplot as plt
import seaborn as sns

from sexdeg.io.phenotype import CASE, CONTROL

Style = Literal["paper", "presentation", "notebook"]

# seaborn context and figure dpi per target medium
_MEDIA = {
    "paper": ("paper", 300),
    "presentation": ("talk", 150),
    "notebook": ("notebook", 100),
}

_INK = "#333333"


@dataclass(frozen=True)
class Palette:
    """Named colors; the properties map category labels to colors for seaborn."""
    case: str = "#2563eb"
    control: str = "#f97316"
    male: str = "#0d9488"
    female: str = "#7c3aed"
    up: str = "#0d9488"
    down: str = "#f97316"
    neutral: str = "#94a3b8"

    @property
    def status(self) -> dict[str, str]:
        return {CASE: self.case, CONTROL: self.control}

    @property
    def sex(self) -> dict[str, str]:
        return {"female": self.female, "male": self.male}

    @property
    def direction(self) -> dict[str, str]:
        return {"up": self.up, "down": self.down, "neutral": self.neutral}


PALETTES = {
    "default": Palette(),
    # Paul Tol's "vibrant" scheme
    "colorblind": Palette(
        case="#0077bb", control="#ee7733",
        male="#009988", female="#aa3377",
        up="#0077bb", down="#cc3311", neutral="#bbbbbb",
    ),
}


def configure_style(style: Style = "notebook", palette: str | Palette = "default",
                    font_scale: float = 1.0) -> Palette:
    """
    Apply the shared look to matplotlib and return the palette to draw with.

    Unknown palette names fall back to ``"default"``.
    """
    if not isinstance(palette, Palette):
        palette = PALETTES.get(palette, PALETTES["default"])
    context, dpi = _MEDIA[style]

    sns.set_theme(style="whitegrid", context=context, font_scale=font_scale)
    plt.rcParams.update({
        "figure.facecolor": "white",
        "axes.facecolor": "white",
        "axes.edgecolor": _INK,
        "axes.labelcolor": _INK,
        "text.color": _INK,
        "xtick.color": _INK,
        "ytick.color": _INK,
        "axes.spines.top": False,
        "axes.spines.right": False,
        "legend.frameon": False,
        "figure.dpi": dpi,
        "savefig.dpi": max(dpi, 150),
    })
    return palette
