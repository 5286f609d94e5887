"""
EcoTrack - Shopify sustainability metrics sync
"""

__version__ = "1.0.0"
