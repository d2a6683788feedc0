"""Build pipelines for a static website: styles, scripts, images, cache-busting, live reload."""

__version__ = "0.1.0"
