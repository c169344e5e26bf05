"""Repository for artwork operations."""

from typing import Any, Dict, List, Optional
from datetime import datetime
from sqlalchemy.orm import Session

from folio_engine.models.portfolio import Artwork


class ArtworkRepository:
    """
    Handle database operations for artworks.

    Write methods flush but do not commit; callers own the transaction so a
    whole component restore can be committed or rolled back as one unit.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        account_id: str,
        title: str,
        description: Optional[str] = None,
        medium: Optional[str] = None,
        dimensions: Optional[str] = None,
        year_created: Optional[int] = None,
        price: Optional[str] = None,
        tags: Optional[List[str]] = None,
        status: str = "published",
        featured: bool = False,
        sort_order: int = 0,
        created_at: Optional[datetime] = None,
    ) -> Artwork:
        """
        Insert a new artwork owned by `account_id`.

        The id is always freshly generated by the model default.

        Returns:
            Created artwork (flushed, id assigned)
        """
        now = datetime.utcnow()
        artwork = Artwork(
            account_id=account_id,
            title=title,
            description=description,
            medium=medium,
            dimensions=dimensions,
            year_created=year_created,
            price=price,
            tags=list(tags or []),
            status=status,
            featured=featured,
            sort_order=sort_order,
            created_at=created_at or now,
            updated_at=now,
        )
        self.db.add(artwork)
        self.db.flush()
        return artwork

    def get_for_account(self, artwork_id: str, account_id: str) -> Optional[Artwork]:
        """Get an artwork only if it belongs to `account_id`."""
        return (
            self.db.query(Artwork)
            .filter(Artwork.id == artwork_id, Artwork.account_id == account_id)
            .first()
        )

    def list_by_account(self, account_id: str) -> List[Artwork]:
        """List all artworks for an account in gallery order."""
        return (
            self.db.query(Artwork)
            .filter(Artwork.account_id == account_id)
            .order_by(Artwork.created_at.asc(), Artwork.sort_order.asc(), Artwork.id.asc())
            .all()
        )

    def count_by_account(self, account_id: str) -> int:
        return self.db.query(Artwork).filter(Artwork.account_id == account_id).count()

    def delete_by_account(self, account_id: str) -> List[str]:
        """
        Delete every artwork owned by an account.

        Returns:
            Storage paths of the deleted rows that had stored images
        """
        artworks = self.list_by_account(account_id)
        storage_paths = [a.storage_path for a in artworks if a.storage_path]
        for artwork in artworks:
            self.db.delete(artwork)
        self.db.flush()
        return storage_paths

    def attach_image(self, artwork: Artwork, urls: Dict[str, Any]) -> Artwork:
        """
        Point an artwork at stored image objects.

        Args:
            artwork: Artwork row to update
            urls: Mapping with storage_path, image_url, thumbnail_url, original_url
        """
        artwork.storage_path = urls.get("storage_path")
        artwork.image_url = urls.get("image_url")
        artwork.thumbnail_url = urls.get("thumbnail_url") or urls.get("image_url")
        artwork.original_url = urls.get("original_url")
        artwork.updated_at = datetime.utcnow()
        self.db.flush()
        return artwork
