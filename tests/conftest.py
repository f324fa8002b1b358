import pytest

from genomicdao import db
from genomicdao.keys import KeyMaterial


@pytest.fixture
def key_material():
    return KeyMaterial.generate()


# Point the sqlite module at a throwaway database for each test that asks for it
@pytest.fixture
def sqlite_db(tmp_path):
    db.configure(tmp_path / "genomicdao-test.db")
    db.init_db()
    yield
    db.reset_db()
    db.close_connection()
