"""
Serving Module
"""
from .services import AppServices, build_services

__all__ = [
    "AppServices",
    "build_services",
]
