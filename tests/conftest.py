from pathlib import Path

import pytest

from evline.database.create_schema import create_schema

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_path():
    return FIXTURES / "sample1.txt"


@pytest.fixture
def sample_text(sample_path):
    return sample_path.read_text(encoding="utf-8")


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "evline.sqlite"
    create_schema(path)
    # функции без явного db_path тоже смотрят во временную базу
    monkeypatch.setattr("evline.utils.DB_PATH", path)
    monkeypatch.setattr("evline.database.db_utils.DB_PATH", path)
    return path
