"""PureProxy: validate, enrich and score third-party relay endpoints."""

__version__ = "0.1.0"
