"""
Visualization for sex-stratified differential expression.

Modules:
    core: Figure wrapper (save to disk, PNG bytes for downloads)
    styles: Palettes and matplotlib/seaborn configuration
    differential: Volcano plots, expression box plots, RFE profiles

Examples:
    >>> from sexdeg.viz import DifferentialVisualizer
    >>> viz = DifferentialVisualizer()
    >>> viz.plot_volcano(result).save("volcano_female.png")
"""

from sexdeg.viz.core import Figure
from sexdeg.viz.styles import Palette, PALETTES, configure_style
from sexdeg.viz.differential import DifferentialVisualizer

__all__ = [
    'Figure',
    'Palette',
    'PALETTES',
    'configure_style',
    'DifferentialVisualizer',
]
