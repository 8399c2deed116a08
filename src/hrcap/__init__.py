"""hrcap — Morpheus heart-rate monitor capture and protocol decoding toolkit."""

__version__ = "0.1.0"
