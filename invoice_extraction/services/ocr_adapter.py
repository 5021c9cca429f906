from loguru import logger
from pydantic import BaseModel, Field
from azure.ai.documentintelligence import DocumentIntelligenceClient
from azure.core.credentials import AzureKeyCredential

from ..core.config import settings
from ..models.invoice import BoundingBox, PositionedFragment

POINTS_PER_INCH = 72


class OcrPage(BaseModel):
    """One recognized page: reading-order lines plus their positions."""
    lines: list[str] = Field(default_factory=list)
    fragments: list[PositionedFragment] = Field(default_factory=list)
    width: int = 0
    height: int = 0


def _polygon_box(polygon, scale: float) -> BoundingBox | None:
    if not polygon or len(polygon) < 8:
        return None
    xs = polygon[0::2]
    ys = polygon[1::2]
    return BoundingBox(
        left=int(round(min(xs) * scale)),
        top=int(round(min(ys) * scale)),
        right=int(round(max(xs) * scale)),
        bottom=int(round(max(ys) * scale)),
    )


def page_from_azure_result(result) -> list[OcrPage]:
    """Convert a Document Intelligence analyze result into positioned pages."""
    pages = []
    for page in getattr(result, "pages", None) or []:
        scale = POINTS_PER_INCH if getattr(page, "unit", None) == "inch" else 1
        fragments = []
        for line in getattr(page, "lines", None) or []:
            text = (getattr(line, "content", None) or "").strip()
            if not text:
                continue
            fragments.append(PositionedFragment(text=text, box=_polygon_box(getattr(line, "polygon", None), scale)))
        pages.append(OcrPage(
            lines=[f.text for f in fragments],
            fragments=fragments,
            width=int(round((page.width or 0) * scale)),
            height=int(round((page.height or 0) * scale)),
        ))
    return pages


def analyze_document(file_bytes: bytes) -> list[OcrPage]:
    # Check if Azure Document Intelligence is configured
    if not (settings.az_di_endpoint and settings.az_di_api_key):
        logger.warning(
            "Azure Document Intelligence not configured - no OCR available. "
            "Set AZ_DI_ENDPOINT and AZ_DI_API_KEY to enable extraction from files."
        )
        return []

    logger.info(
        "Analyzing document with Azure Document Intelligence",
        model=settings.az_di_model,
        size_bytes=len(file_bytes),
    )
    try:
        client = DocumentIntelligenceClient(
            endpoint=settings.az_di_endpoint,
            credential=AzureKeyCredential(settings.az_di_api_key)
        )
        poller = client.begin_analyze_document(
            settings.az_di_model,
            body=file_bytes,
            content_type="application/octet-stream"
        )
        result = poller.result()
    except Exception as e:
        logger.error("Azure DI analysis failed", error=str(e))
        raise RuntimeError(f"Document analysis failed: {e}") from e

    pages = page_from_azure_result(result)
    logger.info("Document analyzed", pages=len(pages), lines=sum(len(p.lines) for p in pages))
    return pages
