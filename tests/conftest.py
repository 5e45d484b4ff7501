import pytest

from propreg import db


# Fresh database file per test for isolation
@pytest.fixture(autouse=True)
def _isolated_db(tmp_path):
    db.set_db_path(tmp_path / "propreg.db")
    db.init_db()
    yield
    db.close_connection()
