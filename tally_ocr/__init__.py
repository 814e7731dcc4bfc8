"""Tally sheet digitizer.

Turns photographed or scanned handwritten production tally sheets into
per-machine production records: Tesseract OCR on a binarized, upscaled
image, a parser that groups shift rows under dated blocks, a review
session a person corrects against the image, and an idempotent commit
to the record store.
"""
