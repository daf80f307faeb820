"""editormap: location-based editor discovery with privacy-preserving map positions."""

__version__ = "0.1.0"
