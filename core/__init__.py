"""
Core utilities and shared components for the Waitline platform.

This package holds the cross-cutting pieces used by every app, currently the
exception hierarchy and the DRF exception handler.
"""

__version__ = "1.0.0"
