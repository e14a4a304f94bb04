"""
Custom exceptions for Lead Nurture API.
Provides consistent error handling across the application.
"""
from fastapi import HTTPException, status


class LeadNurtureException(Exception):
    """Base exception for Lead Nurture"""
    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(LeadNurtureException):
    """Resource not found"""
    def __init__(self, resource: str = "Resource", resource_id: str = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(message)


class ValidationError(LeadNurtureException):
    """Validation failed"""
    def __init__(self, message: str = "Validation failed", field: str = None):
        if field:
            message = f"Validation failed for field '{field}': {message}"
        super().__init__(message)


class ExternalServiceError(LeadNurtureException):
    """External service call failed"""
    def __init__(self, service: str = "External service", message: str = None):
        msg = f"{service} call failed"
        if message:
            msg = f"{msg}: {message}"
        super().__init__(msg)


class DeliveryError(ExternalServiceError):
    """Outbound SMS or call could not be handed to the provider"""
    def __init__(self, message: str = None, code: str = None):
        self.code = code or "DELIVERY_ERROR"
        super().__init__("Delivery gateway", message)


class GenerationError(ExternalServiceError):
    """Text generation failed or timed out"""
    def __init__(self, message: str = None):
        super().__init__("Text generation", message)


class InvalidTransitionError(LeadNurtureException):
    """Requested status is not a known lead status"""
    def __init__(self, status_value: str):
        super().__init__(f"Unknown lead status '{status_value}'")


# HTTP Exception helpers
def raise_not_found(resource: str = "Resource", resource_id: str = None):
    """Raise 404 HTTPException"""
    err = NotFoundError(resource, resource_id)
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=err.message)


def raise_unauthorized(message: str = "Could not validate credentials"):
    """Raise 401 HTTPException"""
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=message)


def raise_forbidden(message: str = "You don't have permission to access this resource"):
    """Raise 403 HTTPException"""
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)


def raise_validation_error(message: str = "Validation failed", field: str = None):
    """Raise 422 HTTPException"""
    err = ValidationError(message, field)
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=err.message)
