import os
import tempfile

# avant tout import de l'application : logs et caches hors du dépôt
_TMP = tempfile.mkdtemp(prefix="depot-vente-tests-")
os.environ.setdefault("LOG_DIR", os.path.join(_TMP, "logs"))
os.environ.setdefault("DRAFT_CACHE_DIR", os.path.join(_TMP, "drafts"))
os.environ.setdefault("DOCUMENTS_DIR", os.path.join(_TMP, "documents"))

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.app.db.models.models_v1 import Base, Client, Product, SubProduct  # noqa: E402
from backend.services.documents import DocumentGenerator  # noqa: E402
from backend.services.drafts import DraftStore, LocalDraftCache  # noqa: E402
from backend.services.row_store import RowStore  # noqa: E402
from backend.services.stock_positions import associate_product  # noqa: E402

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Session DB isolée par test.

    Par défaut : SQLite en mémoire, schéma recréé à chaque test.
    Avec TEST_DATABASE_URL (PostgreSQL) : transaction englobante + SAVEPOINT,
    TOUT est rollback à la fin du test, même après commit().
    """
    if not TEST_DATABASE_URL:
        engine = create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(bind=engine)
        session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
        try:
            yield session
        finally:
            session.close()
            engine.dispose()
        return

    engine = create_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection, autoflush=False, join_transaction_mode="create_savepoint")
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()
        engine.dispose()


@pytest.fixture
def store(db_session) -> RowStore:
    return RowStore(db_session)


@pytest.fixture
def drafts(store, tmp_path) -> DraftStore:
    return DraftStore(store, LocalDraftCache(tmp_path / "drafts"))


@pytest.fixture
def documents(store, tmp_path) -> DocumentGenerator:
    return DocumentGenerator(store, base_dir=tmp_path / "documents")


@pytest.fixture
def depot(db_session, store):
    """
    Client dépositaire avec :
    - "Savon" : produit simple, prix 10.00, stock 10
    - "Bougie" : prix 5.00, sous-produits A (stock 4) et B (stock 6)
    """
    client = Client(name="Boutique test")
    savon = Product(name="Savon", price=Decimal("10.00"), recommended_sale_price=Decimal("15.00"))
    bougie = Product(name="Bougie", price=Decimal("5.00"))
    db_session.add_all([client, savon, bougie])
    db_session.flush()
    sub_a = SubProduct(product_id=bougie.id, name="A")
    sub_b = SubProduct(product_id=bougie.id, name="B")
    db_session.add_all([sub_a, sub_b])
    db_session.commit()

    associate_product(store, client_id=client.id, product_id=savon.id, initial_stock=10)
    associate_product(
        store,
        client_id=client.id,
        product_id=bougie.id,
        sub_product_stocks={sub_a.id: 4, sub_b.id: 6},
    )

    class Depot:
        pass

    d = Depot()
    d.client, d.savon, d.bougie, d.sub_a, d.sub_b = client, savon, bougie, sub_a, sub_b
    return d


@pytest.fixture
def client(db_session, tmp_path):
    """Client HTTP sur l'application, get_db branché sur la session de test."""
    from backend.app.api.deps import get_db, get_documents, get_draft_store
    from backend.app.main import app
    from backend.services.drafts import DraftSessionRegistry

    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_documents] = lambda: DocumentGenerator(
        RowStore(db_session), base_dir=tmp_path / "documents"
    )
    app.dependency_overrides[get_draft_store] = lambda: DraftStore(
        RowStore(db_session), LocalDraftCache(tmp_path / "drafts")
    )
    app.state.draft_sessions = DraftSessionRegistry()
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()
