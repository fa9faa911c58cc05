from pydantic import BaseModel, ConfigDict, Field


class ChecklistItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: str
    icon: str | None = None
    display_icon: str
    order: int | None = None
    active: bool = True


class ChecklistItemCreate(BaseModel):
    title: str = Field(min_length=1, max_length=160)
    description: str = Field(min_length=1)
    icon: str | None = Field(default=None, max_length=16)
    order: int | None = None


class ChecklistItemUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=160)
    description: str | None = Field(default=None, min_length=1)
    icon: str | None = Field(default=None, max_length=16)
    order: int | None = None
    active: bool | None = None

    def to_fields(self) -> dict[str, object]:
        data = self.model_dump(exclude_unset=True)
        if "order" in data:
            data["sort_order"] = data.pop("order")
        if "active" in data:
            data["is_active"] = data.pop("active")
        return data
