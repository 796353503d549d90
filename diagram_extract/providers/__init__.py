"""Pluggable detection providers.

Each module in this package wraps one external capability (the vision
segmentation API, the PDF's embedded-image placements) that can be enabled
independently. Providers fail soft: when a credential is missing or a call
errors out, the detection pipeline continues with fewer candidates.
"""
