"""
Sanity checks run on an extracted (or user-corrected) invoice before it is
stored.

Each check contributes a boolean to the report and, when it fails, an issue
describing which field looks wrong. Checks never modify the invoice.
"""

import calendar
from datetime import date
from typing import Dict, Iterable
from loguru import logger
from pydantic import BaseModel

from ..models.invoice import ExtractedInvoice, FieldName
from . import vocabulary as vocab
from .company_names import is_same_company
from .extractors import normalize_vat_number


class InvoiceIssue(BaseModel):
    kind: str
    field: FieldName | None = None
    message: str


class CheckReport(BaseModel):
    """Outcome of all checks with one entry per check"""
    passed: bool
    checks: Dict[str, bool]
    issues: list[InvoiceIssue] = []


class InvoiceChecksConfig(BaseModel):
    """Configuration for invoice checks (loaded from environment)"""
    max_amount: float = 1_000_000.0
    max_future_months: int = 2
    vat_tolerance: float = 0.03


REQUIRED_FIELDS = (
    FieldName.INVOICE_ID,
    FieldName.DATE,
    FieldName.COMPANY_NAME,
    FieldName.AMOUNT_WITHOUT_VAT,
)


def add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def _amount(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class InvoiceChecks:
    """
    Plausibility rules for a single invoice.

    ``history`` is the set of invoices already stored for the same owner; it
    drives the duplicate and identity-consistency checks.
    """

    def __init__(self, config: InvoiceChecksConfig = None):
        self.config = config or InvoiceChecksConfig()

    def evaluate(
        self,
        invoice: ExtractedInvoice,
        history: Iterable[ExtractedInvoice] = (),
        today: date | None = None,
    ) -> CheckReport:
        history = list(history)
        today = today or date.today()
        checks: Dict[str, bool] = {}
        issues: list[InvoiceIssue] = []

        # Check 1: required fields
        missing = [f for f in REQUIRED_FIELDS if not (invoice.get_field(f) or "").strip()]
        checks["required_fields_present"] = not missing
        for field in missing:
            issues.append(InvoiceIssue(kind="missing", field=field, message=f"{field.value} is empty"))

        # Check 2 & 3: amount sign and size
        net = _amount(invoice.amount_without_vat_eur)
        vat = _amount(invoice.vat_amount_eur)
        amounts = {FieldName.AMOUNT_WITHOUT_VAT: net, FieldName.VAT_AMOUNT: vat}
        negative = [f for f, v in amounts.items() if v is not None and v < 0]
        checks["amounts_non_negative"] = not negative
        for field in negative:
            issues.append(InvoiceIssue(kind="negative_amount", field=field, message=f"{field.value} is negative"))

        too_large = [f for f, v in amounts.items() if v is not None and v > self.config.max_amount]
        checks["amount_within_limit"] = not too_large
        for field in too_large:
            issues.append(InvoiceIssue(
                kind="amount_too_large",
                field=field,
                message=f"{field.value} exceeds {self.config.max_amount:,.2f}",
            ))

        # Check 4: date parses and is not far in the future
        date_ok = True
        if invoice.date:
            try:
                issued = date.fromisoformat(invoice.date)
            except ValueError:
                date_ok = False
                issues.append(InvoiceIssue(kind="invalid_date", field=FieldName.DATE, message=f"'{invoice.date}' is not a date"))
            else:
                limit = add_months(today, self.config.max_future_months)
                if issued > limit:
                    date_ok = False
                    issues.append(InvoiceIssue(
                        kind="future_date",
                        field=FieldName.DATE,
                        message=f"{invoice.date} is more than {self.config.max_future_months} months ahead",
                    ))
        checks["date_plausible"] = date_ok

        # Check 5: VAT amount agrees with one standard rate
        vat_ok = True
        if net is not None and vat is not None:
            vat_ok = any(
                abs(vat - net * rate / 100) <= self.config.vat_tolerance for rate in vocab.VAT_RATES
            )
            if not vat_ok:
                issues.append(InvoiceIssue(
                    kind="vat_mismatch",
                    field=FieldName.VAT_AMOUNT,
                    message=f"VAT {vat:.2f} does not match any rate for net {net:.2f}",
                ))
        checks["vat_amount_consistent"] = vat_ok

        # Check 6: duplicate invoice number for the same counterparty
        duplicate = any(self._is_duplicate(invoice, previous) for previous in history)
        checks["not_duplicate"] = not duplicate
        if duplicate:
            issues.append(InvoiceIssue(
                kind="duplicate",
                field=FieldName.INVOICE_ID,
                message=f"Invoice {invoice.invoice_id} was already recorded",
            ))

        # Check 7: the same company name should not appear with another VAT number
        conflict = next((p for p in history if self._vat_conflict(invoice, p)), None)
        checks["company_vat_consistent"] = conflict is None
        if conflict is not None:
            issues.append(InvoiceIssue(
                kind="vat_number_conflict",
                field=FieldName.VAT_NUMBER,
                message=f"{invoice.company_name} was previously recorded with VAT number {conflict.vat_number}",
            ))

        passed = all(checks.values())
        logger.info(
            "Invoice checks evaluated",
            invoice_id=invoice.invoice_id,
            passed=passed,
            checks=checks,
        )
        return CheckReport(passed=passed, checks=checks, issues=issues)

    @staticmethod
    def _is_duplicate(invoice: ExtractedInvoice, previous: ExtractedInvoice) -> bool:
        if not invoice.invoice_id or not previous.invoice_id:
            return False
        if invoice.invoice_id.strip().upper() != previous.invoice_id.strip().upper():
            return False
        if invoice.vat_number and previous.vat_number:
            return normalize_vat_number(invoice.vat_number) == normalize_vat_number(previous.vat_number)
        return True

    @staticmethod
    def _vat_conflict(invoice: ExtractedInvoice, previous: ExtractedInvoice) -> bool:
        if not (invoice.vat_number and previous.vat_number):
            return False
        if not is_same_company(invoice.company_name, previous.company_name):
            return False
        return normalize_vat_number(invoice.vat_number) != normalize_vat_number(previous.vat_number)


def create_invoice_checks(
    max_amount: float = None,
    max_future_months: int = None,
    vat_tolerance: float = None,
) -> InvoiceChecks:
    """
    Factory function to create invoice checks with optional overrides.

    Uses environment variables as defaults, can be overridden per request.
    """
    from ..core.config import settings

    config = InvoiceChecksConfig(
        max_amount=max_amount if max_amount is not None else settings.check_max_amount,
        max_future_months=max_future_months if max_future_months is not None else settings.check_max_future_months,
        vat_tolerance=vat_tolerance if vat_tolerance is not None else settings.check_vat_tolerance,
    )
    return InvoiceChecks(config)
