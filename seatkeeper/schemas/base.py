"""
Base Pydantic schemas
"""

from pydantic import BaseModel, ConfigDict
from typing import Union

# Seats, events, venues and holders are opaque handles: integers or strings
Identifier = Union[int, str]


class BaseSchema(BaseModel):
    """Base schema with common configuration"""
    model_config = ConfigDict(
        from_attributes=True,
        use_enum_values=True,
    )
