"""
FastAPI Middleware Application for the Givebutter-CiviCRM Integration

This middleware receives Givebutter webhooks, verifies their signatures and
records donors, contributions and memberships through the CiviCRM REST API.
"""

__version__ = "1.0.0"
