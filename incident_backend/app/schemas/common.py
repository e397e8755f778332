"""
Shared Pydantic base for the record domain.

Attributes are snake_case in Python; the serialized (wire and local-store)
shape uses camelCase aliases.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing with camelCase aliases."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
