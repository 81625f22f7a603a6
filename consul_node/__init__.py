"""Boot-time configurator for Consul agents on Google Compute Engine."""

__version__ = "0.1.0"
