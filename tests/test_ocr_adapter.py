"""
Tests for the Document Intelligence adapter.

The SDK client is replaced by a fake; the integration test at the bottom
runs against a real resource when AZ_DI_ENDPOINT and AZ_DI_API_KEY are set
and SAMPLE_INVOICE points at a scanned invoice.
"""

import os
from pathlib import Path
from types import SimpleNamespace

import pytest
from invoice_extraction.core.config import settings
from invoice_extraction.services import ocr_adapter
from invoice_extraction.services.ocr_adapter import analyze_document, page_from_azure_result


def fake_line(text, polygon):
    return SimpleNamespace(content=text, polygon=polygon)


def fake_result():
    page = SimpleNamespace(
        unit="pixel",
        width=1000,
        height=1400,
        lines=[
            fake_line("PVM SĄSKAITA FAKTŪRA", [300, 40, 700, 40, 700, 70, 300, 70]),
            fake_line("  ", [0, 0, 1, 0, 1, 1, 0, 1]),
            fake_line("Serija AB Nr. 12345", None),
        ],
    )
    return SimpleNamespace(pages=[page])


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(settings, "az_di_endpoint", "https://example.cognitiveservices.azure.com/")
    monkeypatch.setattr(settings, "az_di_api_key", "test-key")


class TestPageConversion:
    def test_lines_and_boxes(self):
        [page] = page_from_azure_result(fake_result())
        assert page.lines == ["PVM SĄSKAITA FAKTŪRA", "Serija AB Nr. 12345"]
        assert (page.width, page.height) == (1000, 1400)
        box = page.fragments[0].box
        assert (box.left, box.top, box.right, box.bottom) == (300, 40, 700, 70)
        assert page.fragments[1].box is None

    def test_inches_are_scaled_to_points(self):
        page = SimpleNamespace(
            unit="inch", width=8.5, height=11,
            lines=[fake_line("Data 2024-03-15", [1, 1, 2, 1, 2, 1.25, 1, 1.25])],
        )
        [converted] = page_from_azure_result(SimpleNamespace(pages=[page]))
        assert (converted.width, converted.height) == (612, 792)
        box = converted.fragments[0].box
        assert (box.left, box.top, box.right, box.bottom) == (72, 72, 144, 90)

    def test_no_pages(self):
        assert page_from_azure_result(SimpleNamespace(pages=None)) == []


class TestAnalyzeDocument:
    def test_not_configured_returns_no_pages(self, monkeypatch):
        monkeypatch.setattr(settings, "az_di_endpoint", None)
        monkeypatch.setattr(settings, "az_di_api_key", None)
        assert analyze_document(b"%PDF-1.4 minimal") == []

    def test_calls_client(self, monkeypatch, configured):
        calls = {}

        class FakeClient:
            def __init__(self, endpoint, credential):
                calls["endpoint"] = endpoint

            def begin_analyze_document(self, model_id, body, content_type):
                calls["model"] = model_id
                calls["body"] = body
                return SimpleNamespace(result=fake_result)

        monkeypatch.setattr(ocr_adapter, "DocumentIntelligenceClient", FakeClient)
        pages = analyze_document(b"image-bytes")

        assert calls["model"] == settings.az_di_model
        assert calls["body"] == b"image-bytes"
        assert pages[0].lines[0] == "PVM SĄSKAITA FAKTŪRA"

    def test_sdk_error_is_wrapped(self, monkeypatch, configured):
        class FailingClient:
            def __init__(self, endpoint, credential):
                pass

            def begin_analyze_document(self, *args, **kwargs):
                raise ValueError("service unavailable")

        monkeypatch.setattr(ocr_adapter, "DocumentIntelligenceClient", FailingClient)
        with pytest.raises(RuntimeError, match="Document analysis failed"):
            analyze_document(b"image-bytes")


SAMPLE_INVOICE = os.environ.get("SAMPLE_INVOICE")


@pytest.mark.integration
@pytest.mark.skipif(
    not (settings.az_di_endpoint and settings.az_di_api_key and SAMPLE_INVOICE),
    reason="Azure Document Intelligence or SAMPLE_INVOICE not configured",
)
def test_real_document_has_positioned_lines():
    pages = analyze_document(Path(SAMPLE_INVOICE).read_bytes())
    assert pages
    assert pages[0].width > 0 and pages[0].height > 0
    assert any(f.box is not None for f in pages[0].fragments)
