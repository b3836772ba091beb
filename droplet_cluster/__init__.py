"""Tag-based cluster membership for nodes discovered through the DigitalOcean API."""

__version__ = "0.3.0"
