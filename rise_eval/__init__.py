"""Client-side evaluation state for comparing AI-generated radiology outputs."""

__version__ = "0.1.0"
