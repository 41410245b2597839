"""Entity models shared by the merge tests."""

from datetime import date
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from pydantic import BaseModel
from pydantic import Field


class SubData(BaseModel):
    code: str | None = None
    text: str | None = None
    count: int = 0


class KeyData(BaseModel):
    __unique_key__: ClassVar[tuple[str, ...]] = ("code",)

    code: str | None = None
    text: str | None = None
    other: str | None = None


class Item(BaseModel):
    __unique_key__: ClassVar[tuple[str, ...]] = ("id",)

    id: int
    v: str | None = None
    sub: SubData | None = None


class CompositeKeyData(BaseModel):
    __unique_key__: ClassVar[tuple[str, ...]] = ("region", "number")

    region: str
    number: int
    label: str | None = None


class BrokenKeyData(BaseModel):
    __unique_key__: ClassVar[tuple[str, ...]] = ("missing",)

    code: str | None = None


class PatchData(BaseModel):
    id: UUID | None = None
    name: str | None = None
    ignore: ClassVar[str] = "not a field"
    is_valid: bool = Field(False, alias="isValid")
    start_date: date | None = Field(None, alias="startDate")
    count: int = 0
    amount: Decimal | None = None
    sub: SubData | None = None
    values: list[int] | None = None
    nokeys: list[SubData | None] | None = None
    keys: list[KeyData] | None = None
    items: list[Item] | None = None
    composites: list[CompositeKeyData] | None = None
    broken: list[BrokenKeyData] | None = None
    codes: tuple[int, ...] | None = None
    subs: tuple[SubData, ...] = ()
    keyed: tuple[KeyData, ...] | None = None
    tags: dict[str, str] | None = None
    numbers: dict[int, str] | None = None
