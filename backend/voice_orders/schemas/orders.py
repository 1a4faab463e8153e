from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List


class ProductRef(BaseModel):
    """Catalog projection: only the fields the model needs to match names."""
    model_config = ConfigDict(populate_by_name=True)

    id: Any = Field(alias="_id")
    name: str

    def as_prompt_item(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ProcessAudioResponse(BaseModel):
    transcription: str
    # Entries look like {"_id": ..., "count": ...}; shape is enforced by the prompt only
    products: List[Any]


class ErrorResponse(BaseModel):
    error: str
