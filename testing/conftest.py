"""Shared fixtures: in-memory database, temporary object store, accounts and images."""

import io

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from folio_engine import models  # noqa: F401
from folio_engine.db.database import Base
from folio_engine.repositories import AccountRepository, ArtworkRepository
from folio_engine.services.image_storage import ImageStorageService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def storage(tmp_path):
    return ImageStorageService(
        root=tmp_path / "objects",
        public_base_url="http://testserver/api/images",
        thumbnail_size=16,
        display_size=32,
    )


@pytest.fixture
def account(db):
    return AccountRepository(db).create("artist@example.com", display_name="Artist")


@pytest.fixture
def other_account(db):
    return AccountRepository(db).create("someone@example.com", display_name="Someone Else")


@pytest.fixture
def make_image():
    """Factory for real encoded image bytes."""

    def _make(fmt="JPEG", size=(64, 48), color=(200, 80, 40)):
        buffer = io.BytesIO()
        Image.new("RGB", size, color).save(buffer, format=fmt)
        return buffer.getvalue()

    return _make


@pytest.fixture
def add_artwork(db, storage, make_image):
    """Factory that creates a committed artwork, optionally with a stored image."""

    def _add(account_id, title="Untitled", with_image=False, **fields):
        repo = ArtworkRepository(db)
        artwork = repo.create(account_id=account_id, title=title, **fields)
        if with_image:
            stored = storage.store_artwork_image(account_id, artwork.id, make_image(), "jpg")
            repo.attach_image(artwork, stored.to_dict())
        db.commit()
        return artwork

    return _add
