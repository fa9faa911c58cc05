from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class StorePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str


class StoreAdminRead(StorePublic):
    code: str


class StoreCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    code: str = Field(min_length=1, max_length=64)


class StoreCodeUpdate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
