"""
Core Module
"""
from .errors import (
    EcoTrackError,
    InvalidNumber,
    IncompleteProduct,
    NotFound,
    ExternalApiError,
    PersistenceError,
)
from .results import SideEffectResult, MutationResult, UserError

__all__ = [
    "EcoTrackError",
    "InvalidNumber",
    "IncompleteProduct",
    "NotFound",
    "ExternalApiError",
    "PersistenceError",
    "SideEffectResult",
    "MutationResult",
    "UserError",
]
