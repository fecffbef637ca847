"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes and HTTP status
    - ConfigurationError, AuthenticationError, ValidationError,
      NotFoundError, PermissionDeniedError,
      ExternalServiceError

API (import from core.exception_handler):
    - api_exception_handler: DRF exception handler rendering
      {"error", "error_code"} bodies
"""
