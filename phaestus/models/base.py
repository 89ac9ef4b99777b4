"""Shared pydantic base for models that cross the LLM / persistence boundary."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """BaseModel with snake_case attributes and camelCase JSON aliases.

    LLM responses and persisted project snapshots use camelCase keys
    (``overallScore``, ``openScadCode``). Python code uses snake_case.
    Both spellings validate; ``to_json_dict()`` emits camelCase.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict:
        """Serialize for events and snapshots (camelCase, JSON-safe)."""
        return self.model_dump(mode="json", by_alias=True)
