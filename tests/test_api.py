import io

import pytest
from fastapi.testclient import TestClient
from invoice_extraction.api.main import app
from invoice_extraction.api.routers import invoice as invoice_router
from invoice_extraction.models.invoice import BoundingBox, PositionedFragment
from invoice_extraction.services.ocr_adapter import OcrPage

client = TestClient(app)

LINES = [
    "PVM SĄSKAITA FAKTŪRA",
    "Serija AB Nr. 12345",
    "Data: 2024-03-15",
    "Pardavėjas",
    "UAB Ąžuolas",
    "Įmonės kodas 300000001",
    "PVM kodas LT100000000017",
    "Pirkėjas",
    "UAB Žalias Miškas",
    "Įmonės kodas 302222222",
    "PVM kodas LT222222229",
    "Suma be PVM: 100,00 EUR",
    "PVM suma: 21,00 EUR",
]
OWN = {"company_number": "300000001", "vat_number": "LT100000000017", "company_name": "UAB Ąžuolas"}


def box(left, top, right, bottom):
    return {"left": left, "top": top, "right": right, "bottom": bottom}


# KESKO has no legal form, so only a learned template can read it
KESKO_PAGE = [
    {"text": "PVM kodas LT444444441", "box": box(100, 100, 300, 120)},
    {"text": "KESKO", "box": box(600, 200, 700, 220)},
    {"text": "Suma be PVM: 100,00 EUR", "box": box(100, 600, 400, 620)},
    {"text": "PVM suma: 21,00 EUR", "box": box(100, 700, 400, 720)},
]


def ocr_page(fragments):
    positioned = [PositionedFragment(text=f["text"], box=BoundingBox(**f["box"])) for f in fragments]
    return OcrPage(lines=[f.text for f in positioned], fragments=positioned, width=1000, height=1000)


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


class TestParse:
    def test_sale_invoice(self):
        r = client.post("/invoices/parse", json={"lines": LINES, "own": OWN, "direction": "S"})
        assert r.status_code == 200
        body = r.json()
        assert body["company_number"] == "302222222"
        assert body["vat_number"] == "LT222222229"
        assert body["invoice_id"] == "AB12345"
        assert body["vat_rate"] == "21"

    def test_empty_lines(self):
        r = client.post("/invoices/parse", json={"lines": []})
        assert r.status_code == 200
        assert r.json()["extraction_message"]

    def test_bad_direction_returns_422(self):
        r = client.post("/invoices/parse", json={"lines": LINES, "direction": "X"})
        assert r.status_code == 422


def test_merge():
    r = client.post("/invoices/merge", json={"candidates": [
        {"invoice_id": "A1", "amount_without_vat_eur": "100.00"},
        {"invoice_id": "B2", "amount_without_vat_eur": "100.00", "vat_amount_eur": "21.00"},
    ]})
    assert r.status_code == 200
    body = r.json()
    assert body["invoice_id"] == "A1"
    assert body["vat_rate"] == "21"


class TestValidate:
    def test_valid_invoice(self):
        invoice = {
            "invoice_id": "AB12345",
            "date": "2024-03-15",
            "company_name": "UAB Žalias Miškas",
            "amount_without_vat_eur": "100.00",
            "vat_amount_eur": "21.00",
            "vat_rate": "21",
        }
        r = client.post("/invoices/validate", json={"invoice": invoice})
        assert r.status_code == 200
        body = r.json()
        assert body["passed"] is True
        assert body["tax_code"] == "PVM1"

    def test_reverse_charge_and_missing_fields(self):
        r = client.post("/invoices/validate", json={
            "invoice": {"vat_rate": "0"},
            "text": "Atvirkštinis PVM apmokestinimas",
        })
        body = r.json()
        assert body["passed"] is False
        assert body["checks"]["required_fields_present"] is False
        assert body["tax_code"] == "PVM25"


class TestTemplates:
    def test_learn_and_fetch(self):
        r = client.post("/templates/learn", json={
            "fragments": KESKO_PAGE,
            "image_width": 1000,
            "image_height": 1000,
            "confirmed": {"Company_name": "KESKO"},
            "identity_keys": ["LT555555551", "kesko"],
        })
        assert r.status_code == 200
        body = r.json()
        assert body["learned"] is True
        assert sorted(body["keys"]) == ["LT555555551", "kesko"]

        r = client.get("/templates/kesko")
        assert r.status_code == 200
        assert r.json()["regions"][0]["field"] == "Company_name"

    def test_nothing_learned(self):
        r = client.post("/templates/learn", json={
            "fragments": KESKO_PAGE,
            "image_width": 1000,
            "image_height": 1000,
            "confirmed": {"Company_name": "NOT ON PAGE"},
            "identity_keys": ["LT666666661"],
        })
        assert r.status_code == 200
        assert r.json()["learned"] is False

    def test_bad_dimensions(self):
        r = client.post("/templates/learn", json={
            "fragments": KESKO_PAGE,
            "image_width": 0,
            "image_height": 1000,
            "confirmed": {"Company_name": "KESKO"},
            "identity_keys": ["LT777777771"],
        })
        assert r.status_code == 400

    def test_unknown_template(self):
        assert client.get("/templates/no-such-key").status_code == 404


class TestExtract:
    def test_missing_file_returns_422(self):
        r = client.post("/invoices/extract")
        assert r.status_code == 422

    def test_no_pages(self, monkeypatch):
        monkeypatch.setattr(invoice_router, "analyze_document", lambda content: [])
        files = {"file": ("scan.pdf", io.BytesIO(b"%PDF-1.4 minimal"), "application/pdf")}
        r = client.post("/invoices/extract", files=files)
        assert r.status_code == 200
        body = r.json()
        assert body["pages"] == 0
        assert body["invoice"]["extraction_message"] == invoice_router.NO_PAGES_MESSAGE

    def test_ocr_failure_returns_400(self, monkeypatch):
        def fail(content):
            raise RuntimeError("Document analysis failed: timeout")

        monkeypatch.setattr(invoice_router, "analyze_document", fail)
        r = client.post("/invoices/extract", content=b"raw-bytes", headers={"Content-Type": "application/pdf"})
        assert r.status_code == 400

    def test_heuristics_then_template(self, monkeypatch):
        monkeypatch.setattr(invoice_router, "analyze_document", lambda content: [ocr_page(KESKO_PAGE)])
        files = {"file": ("scan.pdf", io.BytesIO(b"%PDF-1.4 minimal"), "application/pdf")}

        before = client.post("/invoices/extract", files=files).json()
        assert before["template_used"] is False
        assert before["invoice"]["company_name"] is None
        assert before["invoice"]["vat_number"] == "LT444444441"

        learned = client.post("/templates/learn", json={
            "fragments": KESKO_PAGE,
            "image_width": 1000,
            "image_height": 1000,
            "confirmed": {"Company_name": "KESKO"},
            "identity_keys": ["LT444444441"],
        })
        assert learned.json()["learned"] is True

        files = {"file": ("scan.pdf", io.BytesIO(b"%PDF-1.4 minimal"), "application/pdf")}
        after = client.post("/invoices/extract", files=files).json()
        assert after["template_used"] is True
        assert after["invoice"]["company_name"] == "KESKO"
        assert after["invoice"]["vat_rate"] == "21"
        assert after["tax_code"] == "PVM1"


@pytest.mark.parametrize("direction", ["S", "P", "U"])
def test_extract_accepts_direction(monkeypatch, direction):
    monkeypatch.setattr(invoice_router, "analyze_document", lambda content: [ocr_page(KESKO_PAGE)])
    r = client.post(
        f"/invoices/extract?direction={direction}",
        content=b"raw-bytes",
        headers={"Content-Type": "application/octet-stream"},
    )
    assert r.status_code == 200
    assert r.json()["pages"] == 1
