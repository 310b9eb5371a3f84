"""doctree: documentation indexes kept in sync with watched source trees."""

__version__ = "0.4.0"
