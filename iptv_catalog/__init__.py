"""IPTV catalog service: playlist and program-guide ingestion for an IPTV front-end."""

__version__ = "0.1.0"
