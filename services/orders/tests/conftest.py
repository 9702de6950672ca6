"""
Shared fixtures: a fresh file-backed SQLite database per test, seeded with a
small directory of users and a catalog of drugs.
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.orm import sessionmaker

from drug_orders import models
from drug_orders.database import make_engine
from drug_orders.enums import Role
from drug_orders.schemas import Actor


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'orders.db'}")
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    """
    Users:
        admin, two institutes (north, south) and a pharmacy attached to north.

    Drugs:
        paracetamol and amoxicillin sold by south, ibuprofen sold by north.
    """
    admin = models.User(name="Admin", email="admin@example.org", role=Role.ADMIN.value)
    north = models.User(name="North Institute", email="north@example.org", role=Role.INSTITUTE.value)
    south = models.User(name="South Institute", email="south@example.org", role=Role.INSTITUTE.value)
    pharmacy = models.User(name="Town Pharmacy", email="pharmacy@example.org", role=Role.PHARMACY.value)
    db.add_all([admin, north, south, pharmacy])
    db.flush()

    paracetamol = models.Drug(
        name="Paracetamol 500mg", batch_no="PCM-001", price=Decimal("2.50"), stock=100, created_by=south.id
    )
    amoxicillin = models.Drug(
        name="Amoxicillin 250mg", batch_no="AMX-042", price=Decimal("10.00"), stock=5, created_by=south.id
    )
    ibuprofen = models.Drug(
        name="Ibuprofen 200mg", batch_no="IBU-7", price=Decimal("1.20"), stock=50, created_by=north.id
    )
    db.add_all([paracetamol, amoxicillin, ibuprofen])
    db.commit()

    return SimpleNamespace(
        admin=Actor(id=admin.id, role=admin.role),
        north=Actor(id=north.id, role=north.role),
        south=Actor(id=south.id, role=south.role),
        pharmacy=Actor(id=pharmacy.id, role=pharmacy.role),
        paracetamol=paracetamol.id,
        amoxicillin=amoxicillin.id,
        ibuprofen=ibuprofen.id,
    )
