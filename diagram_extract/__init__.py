"""Hybrid diagram detection and region extraction for document pages.

Detected regions come from three sources (layout-analysis figures, embedded
page images, vision-model segmentation) and are cropped into individual PNG
files under ``<out_dir>/diagrams/images/``.
"""

__version__ = "0.3.0"
