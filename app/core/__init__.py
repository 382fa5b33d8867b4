"""
Core Application - Shared Infrastructure

Generic building blocks used by the billing app. Nothing in this package
knows about students, payers or Stripe.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer (logger, transactions)
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures

Protocols (import from core.protocols):
    - CacheBackend: Generic cache interface

Helpers (import from core.helpers):
    - parse_uuid: Lenient UUID parsing
    - digits_only: Strip every non-digit character

Views (import from core.views):
    - health_check: Liveness probe
"""
