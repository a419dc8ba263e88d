"""Shared schema base.

Learn: The API speaks camelCase JSON (dateOfBirth, isEmailVerified) while
Python code stays snake_case. alias_generator handles the translation;
populate_by_name lets tests and internal callers use either spelling.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class MessageResponse(ApiModel):
    success: bool = True
    message: str
