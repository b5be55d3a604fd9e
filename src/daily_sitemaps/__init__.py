"""Daily sitemap catalog with background generation orchestration."""

__version__ = "0.1.0"
