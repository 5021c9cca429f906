from pydantic import BaseModel, Field
from ..models.invoice import (
    Direction,
    ExtractedInvoice,
    FieldRegion,
    MergeStrategy,
    OwnCompanyIdentity,
    PositionedFragment,
)
from ..services.invoice_checks import InvoiceIssue


class ParseRequest(BaseModel):
    lines: list[str]
    own: OwnCompanyIdentity | None = None
    direction: Direction = Direction.UNKNOWN


class TemplateParseRequest(BaseModel):
    fragments: list[PositionedFragment]
    image_width: int
    image_height: int
    identity_keys: list[str] = Field(default_factory=list)  # empty = derive from the heuristic parse
    own: OwnCompanyIdentity | None = None
    direction: Direction = Direction.UNKNOWN


class MergeRequest(BaseModel):
    candidates: list[ExtractedInvoice]
    strategy: MergeStrategy = Field(default_factory=MergeStrategy)
    own: OwnCompanyIdentity | None = None
    direction: Direction = Direction.UNKNOWN


class ValidateRequest(BaseModel):
    invoice: ExtractedInvoice
    history: list[ExtractedInvoice] = Field(default_factory=list)
    text: str | None = None  # Full OCR text, used for reverse-charge detection


class ValidateResponse(BaseModel):
    passed: bool
    checks: dict[str, bool]
    issues: list[InvoiceIssue]
    tax_code: str


class ExtractResponse(BaseModel):
    invoice: ExtractedInvoice
    pages: int = 0
    template_used: bool = False
    tax_code: str | None = None


class LearnRequest(BaseModel):
    fragments: list[PositionedFragment]
    image_width: int
    image_height: int
    confirmed: dict[str, str | None]
    identity_keys: list[str]


class LearnResponse(BaseModel):
    learned: bool
    keys: list[str] = Field(default_factory=list)
    regions: list[FieldRegion] = Field(default_factory=list)


class TemplateResponse(BaseModel):
    key: str
    regions: list[FieldRegion]
