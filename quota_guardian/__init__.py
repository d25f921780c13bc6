"""
Quota Guardian.

Background monitor for AI model quota with transparent token refresh.
"""

__version__ = "0.1.0"
