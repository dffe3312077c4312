"""
Pytest fixtures for the distribution backend tests.

Provides an in-memory database, master data (departments, users, types),
document factories and a test client.
"""

import pytest
from datetime import date

from dds import create_app
from dds.extensions import db
from dds.models import AdditionalDocument, Department, DistributionType, Invoice, User
from dds.services import notification_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NOTIFICATIONS_ENABLED': True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        notification_service.discard_pending()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        notification_service.discard_pending()


@pytest.fixture(scope='function')
def dept_a(db_session):
    dept = Department(name="Department A", location_code="DEPTA")
    db_session.add(dept)
    db_session.commit()
    return dept


@pytest.fixture(scope='function')
def dept_b(db_session):
    dept = Department(name="Department B", location_code="DEPTB")
    db_session.add(dept)
    db_session.commit()
    return dept


@pytest.fixture(scope='function')
def dept_c(db_session):
    dept = Department(name="Department C", location_code="DEPTC")
    db_session.add(dept)
    db_session.commit()
    return dept


def _make_user(db_session, username, department):
    user = User(
        name=username.replace("_", " ").title(),
        username=username,
        email=f"{username}@dds.test",
        department_id=department.id if department else None,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_a(db_session, dept_a):
    """Sender-side user in Department A."""
    return _make_user(db_session, "user_a", dept_a)


@pytest.fixture(scope='function')
def user_b(db_session, dept_b):
    """Receiver-side user in Department B."""
    return _make_user(db_session, "user_b", dept_b)


@pytest.fixture(scope='function')
def user_c(db_session, dept_c):
    """User in an uninvolved department."""
    return _make_user(db_session, "user_c", dept_c)


@pytest.fixture(scope='function')
def normal_type(db_session):
    dist_type = DistributionType(name="Normal", code="NRM", priority=3)
    db_session.add(dist_type)
    db_session.commit()
    return dist_type


@pytest.fixture(scope='function')
def urgent_type(db_session):
    dist_type = DistributionType(name="Urgent", code="URG", priority=1)
    db_session.add(dist_type)
    db_session.commit()
    return dist_type


@pytest.fixture(scope='function')
def make_invoice(db_session):
    """Factory: make_invoice("INV-1", dept_a, companions=[additional_doc, ...])."""
    def _make(number, department, companions=None):
        invoice = Invoice(
            invoice_number=number,
            supplier_name="Supplier",
            invoice_date=date(2025, 1, 15),
            amount=150000,
            cur_loc=department.location_code if department else None,
        )
        for companion in companions or []:
            invoice.additional_documents.append(companion)
        db_session.add(invoice)
        db_session.commit()
        return invoice
    return _make


@pytest.fixture(scope='function')
def make_additional_document(db_session):
    """Factory: make_additional_document("ITO-1", dept_a)."""
    def _make(number, department, document_type="ITO"):
        document = AdditionalDocument(
            document_number=number,
            document_type=document_type,
            cur_loc=department.location_code if department else None,
        )
        db_session.add(document)
        db_session.commit()
        return document
    return _make


def actor_headers(user) -> dict:
    """Helper to create the upstream auth header for a user."""
    return {'X-User-Id': str(user.id)}
