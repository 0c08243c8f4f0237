"""
SiteLens - batch query service for multi-tenant web analytics.
"""

__version__ = "1.0.0"
