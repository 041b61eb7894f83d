"""cv-site: personal CV backend with gated API and signed webhooks."""

__version__ = "1.0.0"
