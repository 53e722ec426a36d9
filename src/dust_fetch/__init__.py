"""
Dust Fetch - metadata acquisition backend for Dust Game Manager
"""

__version__ = "0.3.0"
