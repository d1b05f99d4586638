"""
Shared base for API schemas.

Wire payloads are camelCase (accessToken, mfaRequired, ...) while Python
attributes stay snake_case. Requests accept either spelling; responses are
always emitted with the camelCase aliases (FastAPI serializes response models
by alias).
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    message: str
