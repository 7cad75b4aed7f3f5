"""Schema helpers shared by the profile-store routers."""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..services.records import normalize_identity


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
    )


def wallet_address(value: str) -> str:
    return normalize_identity(value)
