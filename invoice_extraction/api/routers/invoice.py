from fastapi import APIRouter, UploadFile, File, HTTPException, Request
from loguru import logger
from ..deps import (
    ExtractResponse,
    MergeRequest,
    ParseRequest,
    TemplateParseRequest,
    ValidateRequest,
    ValidateResponse,
)
from ...models.invoice import Direction, ExtractedInvoice, OwnCompanyIdentity
from ...services.invoice_checks import create_invoice_checks
from ...services.merge import merge
from ...services.ocr_adapter import analyze_document
from ...services.parser import parse_for
from ...services.storage.templates import get_template_store
from ...services.tax_codes import determine_tax_code
from ...services.template_matcher import identity_keys_for, parse_with_template

router = APIRouter(prefix="/invoices", tags=["invoices"])

NO_PAGES_MESSAGE = "OCR returned no pages for the document."


@router.post("/parse", response_model=ExtractedInvoice)
async def parse_lines(req: ParseRequest):
    """Heuristic field extraction from already-recognized text lines."""
    try:
        return parse_for(req.lines, req.own, req.direction)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/parse-with-template", response_model=ExtractedInvoice)
async def parse_page_with_template(req: TemplateParseRequest):
    """
    Extract fields from one positioned page, using the counterparty's
    learned template when one is stored.

    Without explicit identity keys, the keys are taken from a heuristic parse
    of the same page.
    """
    try:
        keys = req.identity_keys
        if not keys:
            lines = [f.text for f in req.fragments]
            keys = identity_keys_for(parse_for(lines, req.own, req.direction))
        template = get_template_store().find(keys)
        logger.info("Template lookup", keys=keys, found=template is not None)
        return parse_with_template(
            req.fragments, req.image_width, req.image_height, template, req.own, req.direction
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/merge", response_model=ExtractedInvoice)
async def merge_candidates(req: MergeRequest):
    try:
        return merge(req.candidates, req.strategy, req.own, req.direction)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/validate", response_model=ValidateResponse)
async def validate_invoice(req: ValidateRequest):
    """
    Run plausibility checks on an invoice and determine its tax code.

    ``history`` holds invoices already recorded for the same owner and drives
    the duplicate and VAT-number consistency checks.
    """
    try:
        report = create_invoice_checks().evaluate(req.invoice, req.history)
        text = req.text if req.text is not None else "\n".join(req.invoice.lines)
        return ValidateResponse(
            passed=report.passed,
            checks=report.checks,
            issues=report.issues,
            tax_code=determine_tax_code(req.invoice.vat_rate, text),
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/extract", response_model=ExtractResponse)
async def extract(
    request: Request,
    file: UploadFile = File(None),
    direction: Direction = Direction.UNKNOWN,
    own_company_number: str | None = None,
    own_vat_number: str | None = None,
    own_company_name: str | None = None,
):
    """
    OCR a document with Azure Document Intelligence and extract its fields.

    Accepts either:
    - multipart/form-data (file upload via form)
    - application/pdf or application/octet-stream (raw binary body)

    Every page is parsed, the counterparty's template is applied when one is
    stored, and the page results are merged into one invoice.
    """
    try:
        if file:
            content = await file.read()
        else:
            content = await request.body()
            if not content:
                raise HTTPException(status_code=422, detail="No file provided (either multipart or raw body)")

        own = OwnCompanyIdentity(
            company_number=own_company_number,
            vat_number=own_vat_number,
            company_name=own_company_name,
        )
        pages = analyze_document(content)
        if not pages:
            return ExtractResponse(invoice=ExtractedInvoice(extraction_message=NO_PAGES_MESSAGE))

        candidates = [parse_for(page.lines, own, direction) for page in pages]
        first_pass = merge(candidates, own=own, direction=direction)
        template = get_template_store().find(identity_keys_for(first_pass))
        if template is not None:
            candidates = [
                parse_with_template(page.fragments, page.width, page.height, template, own, direction)
                for page in pages
            ]
        invoice = merge(candidates, own=own, direction=direction)

        logger.info(
            "Document extracted",
            pages=len(pages),
            template_used=template is not None,
            invoice_id=invoice.invoice_id,
        )
        return ExtractResponse(
            invoice=invoice,
            pages=len(pages),
            template_used=template is not None,
            tax_code=determine_tax_code(invoice.vat_rate, "\n".join(invoice.lines)),
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))
