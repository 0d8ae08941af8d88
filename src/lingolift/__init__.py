"""lingolift: offline-first flashcard lessons with multi-device sync."""

from lingolift.consts import VERSION

__version__ = VERSION
