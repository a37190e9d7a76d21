"""
Hostsharing DynDNS - A dynamic DNS updater for zone-file fragments.

This package provides an HTTP service that authenticates router update
requests and rewrites a DNS zone-file fragment with the reported addresses.
"""

__version__ = "0.1.0"
__author__ = "Hostsharing DynDNS Contributors"
