"""
Core modules for the quota guardian.

This package contains the polling scheduler, its clock and token cache,
companion bridge detection and usage chart computation.
"""
