"""uniconv - Media and document conversion toolkit."""

__version__ = "0.1.0"
