from pydantic import BaseModel, ConfigDict


class APIModel(BaseModel):
    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
    }


class EventPayload(BaseModel):
    """Base for inbound Socket.IO payloads; every field is optional so that
    presence can be checked (and reported) before anything else."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
        coerce_numbers_to_str=True,
    )

    def missing(self, *names: str) -> list[str]:
        fields = type(self).model_fields
        return [fields[name].alias or name for name in names if not getattr(self, name)]
