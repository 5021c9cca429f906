"""
Tests for template persistence.

Both stores must:
- Save a learned template under every identity key
- Merge repeated learning into the stored template
- Leave storage untouched when nothing is learned
"""

import json
import os
import sqlite3
import tempfile

import pytest
from invoice_extraction.models.invoice import BoundingBox, FieldName, PositionedFragment
from invoice_extraction.services.storage.template_store import InMemoryTemplateStore
from invoice_extraction.services.storage.template_store_sqlite import SQLiteTemplateStore
from invoice_extraction.services.storage.templates import create_template_store

KEYS = ["LT222222229", "302222222", "zalias miskas"]
PAGE = [
    PositionedFragment(text="PVM kodas LT222222229", box=BoundingBox(left=600, top=230, right=820, bottom=250)),
    PositionedFragment(text="2024-03-15", box=BoundingBox(left=100, top=80, right=200, bottom=100)),
]
CONFIRMED = {"VAT_number": "LT222222229", "Date": "2024-03-15"}


@pytest.fixture
def db_path():
    """Create a temporary database file for testing"""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    if os.path.exists(path):
        os.remove(path)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, db_path):
    if request.param == "memory":
        return InMemoryTemplateStore()
    return SQLiteTemplateStore(db_path)


def test_learn_saves_under_every_key(store):
    learned = store.learn(PAGE, 1000, 1000, CONFIRMED, KEYS)

    assert set(learned) == set(KEYS)
    assert store.list_keys() == sorted(KEYS)
    for key in KEYS:
        template = store.get(key)
        assert set(template.regions) == {FieldName.VAT_NUMBER, FieldName.DATE}


def test_learning_twice_merges(store):
    store.learn(PAGE, 1000, 1000, CONFIRMED, KEYS)
    store.learn(PAGE, 1000, 1000, {"VAT_number": "LT222222229"}, KEYS[:1])

    vat_template = store.get("LT222222229")
    assert vat_template.regions[FieldName.VAT_NUMBER].sample_count == 2
    assert vat_template.regions[FieldName.DATE].confidence == pytest.approx(0.95)
    # keys not passed on the second run keep the earlier template
    assert store.get("302222222").regions[FieldName.VAT_NUMBER].sample_count == 1


def test_existing_template_found_by_any_key(store):
    store.learn(PAGE, 1000, 1000, CONFIRMED, ["302222222"])
    store.learn(PAGE, 1000, 1000, {"Date": "2024-03-15"}, ["LT222222229", "302222222"])

    assert store.get("LT222222229").regions[FieldName.DATE].sample_count == 2


def test_nothing_learned_leaves_store_empty(store):
    assert store.learn(PAGE, 1000, 1000, {"Date": "not a date"}, KEYS) is None
    assert store.list_keys() == []


def test_find_skips_blank_and_missing_keys(store):
    store.learn(PAGE, 1000, 1000, CONFIRMED, ["302222222"])

    assert store.find(["", "missing", "302222222"]) is not None
    assert store.find(["missing"]) is None


def test_delete(store):
    store.learn(PAGE, 1000, 1000, CONFIRMED, KEYS)

    assert store.delete("302222222") is True
    assert store.delete("302222222") is False
    assert store.get("302222222") is None
    assert store.get("LT222222229") is not None


def test_sqlite_persists_across_instances(db_path):
    SQLiteTemplateStore(db_path).learn(PAGE, 1000, 1000, CONFIRMED, KEYS)

    reopened = SQLiteTemplateStore(db_path)
    assert reopened.get("LT222222229").regions[FieldName.VAT_NUMBER].left == pytest.approx(0.6)

    conn = sqlite3.connect(db_path)
    row = conn.execute("SELECT template, updated_at FROM templates WHERE key = ?", ("302222222",)).fetchone()
    conn.close()
    assert "VAT_number" in [r["field"] for r in json.loads(row[0])["regions"]]
    assert row[1]


def test_factory_selects_store(db_path):
    assert isinstance(create_template_store(""), InMemoryTemplateStore)
    assert isinstance(create_template_store(db_path), SQLiteTemplateStore)
