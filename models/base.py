"""Base model with camelCase serialization for API output."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for catalog entities and API payloads.

    Serializes as camelCase (``originalName``, ``storageRef``) and accepts
    either spelling on input, so documents written by ``model_dump_json()``
    round-trip through ``model_validate_json()``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )
