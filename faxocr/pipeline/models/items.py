"""Extracted item records.

Two shapes share one collection, told apart by ``kind``:

* ``OCRItem`` for the built-in picking-list schema. ``calculated_total`` and
  ``is_correct`` are derived on every validation, so any construction path
  (fresh extraction, restore, patch) yields a consistent record.
* ``DynamicOCRItem`` for template-driven extraction, with free-form ``data``.

``source_image_url`` is a process-local handle and is excluded from the
storage representation.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from faxocr.pipeline.models.job import new_id

TRANSIENT_FIELDS = frozenset({"source_image_url"})


class Distribution(BaseModel):
    shop_code: str
    quantity: int = 0


class ItemBase(BaseModel):
    id: str = Field(default_factory=new_id)
    seq: int = 0  # working-set insertion order, survives restore
    job_id: Optional[str] = None
    page_number: Optional[int] = None
    source_file: Optional[str] = None
    bounding_box: Optional[list[float]] = None
    is_verified: bool = False
    source_image_url: Optional[str] = None

    def to_storage(self) -> dict[str, Any]:
        """Serializable form without process-local handles."""
        return self.model_dump(mode="json", exclude=set(TRANSIENT_FIELDS))


class OCRItem(ItemBase):
    kind: Literal["fixed"] = "fixed"
    no: str = ""
    jan_code: str = ""
    product_name: str = ""
    vendor_product_code: str = ""
    size: str = ""
    color: str = ""
    reported_total: Union[int, float] = 0
    distributions: list[Distribution] = Field(default_factory=list)
    calculated_total: int = 0
    is_correct: bool = False

    @model_validator(mode="after")
    def _reconcile_totals(self) -> "OCRItem":
        self.calculated_total = sum(d.quantity for d in self.distributions)
        self.is_correct = self.calculated_total == self.reported_total
        return self


class DynamicOCRItem(ItemBase):
    kind: Literal["dynamic"] = "dynamic"
    template_id: str
    data: dict[str, Any] = Field(default_factory=dict)


Item = Annotated[Union[OCRItem, DynamicOCRItem], Field(discriminator="kind")]

item_adapter: TypeAdapter = TypeAdapter(Item)


def parse_item(payload: dict[str, Any]) -> Union[OCRItem, DynamicOCRItem]:
    """Validate a stored or patched payload into the matching item class."""
    payload = dict(payload)
    payload.setdefault("kind", "fixed")
    return item_adapter.validate_python(payload)
