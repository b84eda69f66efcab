# tests/test_seed.py
from scripts import seed


def test_sample_data_is_consistent():
    names = [p["name"] for p in seed.PRODUCTS]
    assert len(names) == len(set(names))
    for s in seed.STORES:
        assert -90 <= s["latitude"] <= 90
        assert -180 <= s["longitude"] <= 180


def test_requires_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert seed.main([]) == 1
