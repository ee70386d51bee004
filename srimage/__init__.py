"""srimage: render single-molecule localizations into super-resolution images."""

from __future__ import annotations

__version__ = "0.1.0"
