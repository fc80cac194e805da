from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CategoryUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
