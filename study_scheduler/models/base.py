"""
Strict Base Models for Request/Response Validation

Request models reject unknown fields so that mismatched callers fail
fast; response models ignore extra attributes so they can be built
straight from ORM rows.

Architecture:
    Caller → StrictRequest (extra="forbid") → Service
    DB Model → StrictResponse (extra="ignore") → Caller
"""

from pydantic import BaseModel, ConfigDict


class StrictRequest(BaseModel):
    """
    Base model for request bodies with strict validation.

    Features:
        - extra="forbid": Unknown fields raise a validation error
        - validate_default=True: Validates default values
        - str_strip_whitespace=True: Trims whitespace from strings
        - from_attributes=True: Allows ORM model conversion
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
        from_attributes=True,
    )


class StrictResponse(BaseModel):
    """
    Base model for response bodies.

    Features:
        - extra="ignore": Silently ignores extra fields (DB may have more columns)
        - validate_default=True: Validates default values
        - from_attributes=True: Allows ORM model conversion
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_default=True,
        from_attributes=True,
    )
