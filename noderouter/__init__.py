"""Node router: classifies outbound URLs and rewrites them onto acceleration nodes."""

__version__ = "1.0.0"
