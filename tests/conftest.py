import os

os.environ.setdefault("TESTING", "true")

import datetime
import pytest
from unittest.mock import MagicMock

from stora.core.db import Base, engine, session as scoped_session
from stora.core import inventory
from stora.core.loans import Borrower, create_loan


@pytest.fixture
def db_session():
    Base.metadata.create_all(engine)
    db = scoped_session.session_factory()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def blobs():
    store = MagicMock()
    store.put.side_effect = lambda fileobj, name, content_type=None: f"/uploads/{name}"
    return store


@pytest.fixture
def make_item(db_session):
    counter = iter(range(1, 10000))

    def _make(owner_id=1, **attrs):
        data = {
            "name": "Proyektor",
            "code": f"HMSI/ELK/{next(counter):03d}",
            "quantity": 10,
            "category": "Elektronik",
            "condition": "Baik",
        }
        data.update(attrs)
        return inventory.create(db_session, owner_id, data)
    return _make


@pytest.fixture
def make_loan(db_session):
    def _make(lines, owner_id=1, due_date=None, photos=None, loan_date=None):
        return create_loan(
            db_session, owner_id,
            Borrower("Budi", "08123456789"),
            due_date or datetime.datetime.now(datetime.timezone.utc).date() + datetime.timedelta(days=7),
            lines,
            photos=photos,
            loan_date=loan_date,
        )
    return _make
