import pytest
import tennisclub.storage as storage


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "DB_FILE", tmp_path / "tennisclub.db")
    monkeypatch.setattr(storage, "DATABASE_URL", "")
    monkeypatch.setattr(storage, "IS_PG", False)
    monkeypatch.setattr(storage, "_redis", None)
    storage.invalidate_cache()
    yield
    storage.invalidate_cache()

