"""
MangroveWatch
Community reporting core for mangrove incidents.
"""

__version__ = "1.0.0"
