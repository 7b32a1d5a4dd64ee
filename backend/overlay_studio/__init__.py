"""
Overlay Studio - layered image compositing backend.
"""

__version__ = "0.3.0"
