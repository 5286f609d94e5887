"""
Domain Errors

Exception taxonomy shared by the normalizers, the sync services and the
Shopify client. The API layer maps these onto HTTP status codes.
"""

from typing import Any, Dict, List, Optional


class EcoTrackError(Exception):
    """Base class for all domain errors"""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, **self.context}


class InvalidNumber(EcoTrackError):
    """A metric value could not be parsed as a finite number"""

    def __init__(self, value: Any, field: Optional[str] = None):
        label = f" for {field}" if field else ""
        super().__init__(f"Invalid number{label}: {value!r}", value=str(value), field=field)
        self.value = value
        self.field = field


class IncompleteProduct(EcoTrackError):
    """A product is missing one of its identity fields"""

    def __init__(self, missing: List[str]):
        super().__init__(f"Product is missing required fields: {', '.join(missing)}", missing=missing)
        self.missing = missing


class NotFound(EcoTrackError):
    """A store, product or order is absent where one was expected"""

    def __init__(self, entity: str, key: Any):
        super().__init__(f"{entity} not found: {key}", entity=entity, key=str(key))
        self.entity = entity
        self.key = key


class ExternalApiError(EcoTrackError):
    """The Shopify Admin API failed or returned errors"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message, status_code=status_code, errors=errors or [])
        self.status_code = status_code
        self.errors = errors or []


class PersistenceError(EcoTrackError):
    """A database operation failed"""
