"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps (authentication, chat).
Nothing in here knows about chats or messages.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ConflictError: State conflicts (duplicates, etc.)
    - ExternalServiceError: Backing service failures (database, network)

Helpers (import from core.helpers):
    - coerce_uuid: Parse a UUID from user input without raising
"""
