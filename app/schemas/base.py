from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """API models serialize with camelCase keys and accept either spelling."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
