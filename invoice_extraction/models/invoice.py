from enum import Enum
from pydantic import BaseModel, Field, model_validator


class Direction(str, Enum):
    """Whether the document is a sale (own company is seller) or a purchase."""
    SALE = "S"
    PURCHASE = "P"
    UNKNOWN = "U"


class Section(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"


def partner_section(direction: Direction) -> Section:
    """Section of the document that holds the counterparty."""
    if direction == Direction.PURCHASE:
        return Section.SELLER
    return Section.BUYER


class FieldName(str, Enum):
    INVOICE_ID = "Invoice_ID"
    DATE = "Date"
    COMPANY_NAME = "Company_name"
    AMOUNT_WITHOUT_VAT = "Amount_without_VAT_EUR"
    VAT_AMOUNT = "VAT_amount_EUR"
    VAT_NUMBER = "VAT_number"
    COMPANY_NUMBER = "Company_number"


AMOUNT_FIELDS = (FieldName.AMOUNT_WITHOUT_VAT, FieldName.VAT_AMOUNT)


class BoundingBox(BaseModel):
    """Axis-aligned box in source-image pixels."""
    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def center_x(self) -> int:
        return (self.left + self.right) // 2

    @property
    def center_y(self) -> int:
        return (self.top + self.bottom) // 2

    def intersects(self, other: "BoundingBox") -> bool:
        return (
            self.left < other.right and other.left < self.right
            and self.top < other.bottom and other.top < self.bottom
        )

    def contains_point(self, x: int, y: int) -> bool:
        return self.left <= x < self.right and self.top <= y < self.bottom

    @classmethod
    def union(cls, boxes: list["BoundingBox"]) -> "BoundingBox | None":
        if not boxes:
            return None
        return cls(
            left=min(b.left for b in boxes),
            top=min(b.top for b in boxes),
            right=max(b.right for b in boxes),
            bottom=max(b.bottom for b in boxes),
        )


class PositionedFragment(BaseModel):
    text: str
    box: BoundingBox | None = None


class OwnCompanyIdentity(BaseModel):
    """The caller's own identifiers; never reported as the counterparty."""
    company_number: str | None = None
    vat_number: str | None = None
    company_name: str | None = None


class ExtractedInvoice(BaseModel):
    invoice_id: str | None = None
    date: str | None = None  # YYYY-MM-DD
    company_name: str | None = None
    amount_without_vat_eur: str | None = None
    vat_amount_eur: str | None = None
    vat_rate: str | None = None  # integer percent, e.g. "21"
    vat_number: str | None = None
    company_number: str | None = None
    lines: list[str] = Field(default_factory=list)
    extraction_message: str | None = None  # set when no usable text was obtained

    def get_field(self, field: FieldName) -> str | None:
        return getattr(self, FIELD_ATTRIBUTES[field])

    def has_any_field(self) -> bool:
        return any(self.get_field(f) for f in FieldName) or bool(self.vat_rate)


FIELD_ATTRIBUTES = {
    FieldName.INVOICE_ID: "invoice_id",
    FieldName.DATE: "date",
    FieldName.COMPANY_NAME: "company_name",
    FieldName.AMOUNT_WITHOUT_VAT: "amount_without_vat_eur",
    FieldName.VAT_AMOUNT: "vat_amount_eur",
    FieldName.VAT_NUMBER: "vat_number",
    FieldName.COMPANY_NUMBER: "company_number",
}


class FieldRegion(BaseModel):
    """A learned on-page position of one field, normalized to [0, 1]."""
    field: FieldName
    left: float
    top: float
    right: float
    bottom: float
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    sample_count: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def check_bounds(self):
        if not (0.0 <= self.left < self.right <= 1.0):
            raise ValueError(f"invalid horizontal bounds {self.left}..{self.right}")
        if not (0.0 <= self.top < self.bottom <= 1.0):
            raise ValueError(f"invalid vertical bounds {self.top}..{self.bottom}")
        return self

    @property
    def center(self) -> tuple[float, float]:
        return (self.left + self.right) / 2, (self.top + self.bottom) / 2

    @property
    def area(self) -> float:
        return (self.right - self.left) * (self.bottom - self.top)

    def to_record(self) -> dict:
        """Compact persisted form."""
        return {
            "field": self.field.value,
            "l": self.left,
            "t": self.top,
            "r": self.right,
            "b": self.bottom,
            "c": self.confidence,
            "n": self.sample_count,
        }

    @classmethod
    def from_record(cls, record: dict) -> "FieldRegion":
        return cls(
            field=FieldName(record["field"]),
            left=record["l"],
            top=record["t"],
            right=record["r"],
            bottom=record["b"],
            confidence=record.get("c", 1.0),
            sample_count=record.get("n", 1),
        )


class Template(BaseModel):
    """Learned regions for one counterparty, at most one per field."""
    regions: dict[FieldName, FieldRegion] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.regions

    def to_record(self) -> dict:
        return {"regions": [r.to_record() for r in self.regions.values()]}

    @classmethod
    def from_record(cls, record: dict) -> "Template":
        regions = [FieldRegion.from_record(r) for r in record.get("regions", [])]
        return cls(regions={r.field: r for r in regions})


class MergeOrder(str, Enum):
    FIRST_TO_LAST = "first_to_last"
    LAST_TO_FIRST = "last_to_first"


class MergeStrategy(BaseModel):
    """Priority used when combining candidates from several sources or pages."""
    order: MergeOrder = MergeOrder.FIRST_TO_LAST
    amounts_prefer_last: bool = True
