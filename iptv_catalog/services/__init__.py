"""
Services package for the IPTV catalog

This package contains the feed parsers, the guide merge and catalog build
steps, storage, and the refresh orchestration.
"""
