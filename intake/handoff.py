"""Receives a completed extraction and persists it as a new inventory item"""
import logging
from datetime import date
from typing import Optional, Sequence

import duckdb

from . import database
from .images import PreviewStore, TempImage, release_all
from .models import ExtractedFormData


logger = logging.getLogger(__name__)


class HandoffError(ValueError):
    pass


def _iso_date(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        logger.warning("Dropping non-ISO date %r", value)
        return None


def _resolve(conn, table: str, given_id: Optional[str], suggestion: Optional[str]) -> Optional[str]:
    """Use a known id, else find or create a row named after the suggestion"""
    if given_id:
        row = conn.execute(f"SELECT id FROM {table} WHERE id = ?", [given_id]).fetchone()
        if row:
            return row[0]
        logger.warning("Unknown %s id %s, falling back to suggestion", table, given_id)

    if not suggestion or not suggestion.strip():
        return None
    if table == "categories":
        return database.find_category(conn, suggestion) or database.create_category(conn, suggestion)
    return database.find_vendor(conn, suggestion) or database.create_vendor(conn, suggestion)


def apply_extraction(
    conn: duckdb.DuckDBPyConnection,
    data: ExtractedFormData,
    images: Sequence[TempImage] = (),
    previews: Optional[PreviewStore] = None,
) -> str:
    """Create the item, then attach its staged images.

    Exactly the image flagged primary is stored as primary. Staged previews
    are released once the images are stored.
    """
    if not data.name or not data.name.strip():
        raise HandoffError("Item name is required")

    primary_id = next((img.id for img in images if img.is_primary), None)
    if primary_id is None and images:
        primary_id = images[0].id

    # Item, new catalog rows and images are stored together or not at all
    conn.begin()
    try:
        fields = data.present()
        fields["category_id"] = _resolve(conn, "categories", data.category_id, data.category_name_suggestion)
        fields["vendor_id"] = _resolve(conn, "vendors", data.vendor_id, data.vendor_name_suggestion)
        fields["purchase_date"] = _iso_date(data.purchase_date)
        fields["warranty_expiry"] = _iso_date(data.warranty_expiry)

        item_id = database.create_item(conn, fields)
        for img in images:
            database.add_image(
                conn,
                item_id,
                img.data,
                img.content_type,
                original_filename=img.filename,
                is_primary=img.id == primary_id,
            )
        conn.commit()
    except Exception:
        conn.rollback()
        logger.exception("Hand-off of %s failed, nothing was stored", data.name)
        raise

    if previews is not None:
        release_all(images, previews)

    logger.info("Created item %s (%s) with %d images", item_id, data.name, len(images))
    return item_id
