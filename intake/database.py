"""DuckDB catalog that receives items created through the voice flow"""
import duckdb
import json
import uuid
from typing import Optional, List, Dict, Any, Union
from pathlib import Path

from . import config


def init_database(db_path: Union[str, Path, None] = None) -> duckdb.DuckDBPyConnection:
    """Initialize database and create tables if they don't exist"""
    conn = duckdb.connect(str(db_path or config.DB_PATH))

    conn.execute("""
        CREATE TABLE IF NOT EXISTS categories (
            id VARCHAR PRIMARY KEY,
            name VARCHAR NOT NULL UNIQUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS vendors (
            id VARCHAR PRIMARY KEY,
            name VARCHAR NOT NULL UNIQUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS items (
            id VARCHAR PRIMARY KEY,
            name VARCHAR NOT NULL,
            description TEXT,
            tracking_mode VARCHAR NOT NULL DEFAULT 'quantity',
            quantity INTEGER DEFAULT 0,
            min_quantity INTEGER DEFAULT 0,
            unit VARCHAR DEFAULT 'pcs',
            serial_number VARCHAR,
            asset_tag VARCHAR,
            condition VARCHAR DEFAULT 'working',
            purchase_date DATE,
            warranty_expiry DATE,
            location VARCHAR,
            category_id VARCHAR REFERENCES categories(id),
            vendor_id VARCHAR REFERENCES vendors(id),
            specifications VARCHAR DEFAULT '{}',
            purchase_price DECIMAL(15,2),
            purchase_currency VARCHAR(3) DEFAULT 'USD',
            purchase_url VARCHAR,
            datasheet_url VARCHAR,
            notes TEXT,
            tags VARCHAR DEFAULT '[]',
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS images (
            id VARCHAR PRIMARY KEY,
            item_id VARCHAR NOT NULL REFERENCES items(id),
            original_filename VARCHAR,
            mime_type VARCHAR NOT NULL,
            size_bytes INTEGER NOT NULL,
            data BLOB NOT NULL,
            is_primary BOOLEAN DEFAULT FALSE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_images_item ON images(item_id)
    """)

    return conn


def _list_named(conn: duckdb.DuckDBPyConnection, table: str) -> List[Dict[str, str]]:
    rows = conn.execute(f"SELECT id, name FROM {table} ORDER BY name").fetchall()
    return [{"id": r[0], "name": r[1]} for r in rows]


def _find_named(conn: duckdb.DuckDBPyConnection, table: str, name: str) -> Optional[str]:
    row = conn.execute(
        f"SELECT id FROM {table} WHERE lower(name) = lower(?)", [name.strip()]
    ).fetchone()
    return row[0] if row else None


def _create_named(conn: duckdb.DuckDBPyConnection, table: str, name: str) -> str:
    new_id = str(uuid.uuid4())
    conn.execute(f"INSERT INTO {table} (id, name) VALUES (?, ?)", [new_id, name.strip()])
    return new_id


def list_categories(conn: duckdb.DuckDBPyConnection) -> List[Dict[str, str]]:
    return _list_named(conn, "categories")


def list_vendors(conn: duckdb.DuckDBPyConnection) -> List[Dict[str, str]]:
    return _list_named(conn, "vendors")


def find_category(conn: duckdb.DuckDBPyConnection, name: str) -> Optional[str]:
    return _find_named(conn, "categories", name)


def find_vendor(conn: duckdb.DuckDBPyConnection, name: str) -> Optional[str]:
    return _find_named(conn, "vendors", name)


def create_category(conn: duckdb.DuckDBPyConnection, name: str) -> str:
    return _create_named(conn, "categories", name)


def create_vendor(conn: duckdb.DuckDBPyConnection, name: str) -> str:
    return _create_named(conn, "vendors", name)


def list_tags(conn: duckdb.DuckDBPyConnection) -> List[str]:
    """Distinct tags already used by items"""
    tags = set()
    for (raw,) in conn.execute("SELECT tags FROM items").fetchall():
        tags.update(json.loads(raw or "[]"))
    return sorted(tags)


def create_item(conn: duckdb.DuckDBPyConnection, item: Dict[str, Any]) -> str:
    """Insert an item row and return its id"""
    item_id = str(uuid.uuid4())
    conn.execute("""
        INSERT INTO items (
            id, name, description, tracking_mode, quantity, min_quantity, unit,
            serial_number, asset_tag, condition, purchase_date, warranty_expiry,
            location, category_id, vendor_id, specifications, purchase_price,
            purchase_currency, purchase_url, datasheet_url, notes, tags
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, [
        item_id,
        item["name"],
        item.get("description"),
        item.get("tracking_mode", "quantity"),
        item.get("quantity", 0),
        item.get("min_quantity", 0),
        item.get("unit", "pcs"),
        item.get("serial_number"),
        item.get("asset_tag"),
        item.get("condition", "working"),
        item.get("purchase_date"),
        item.get("warranty_expiry"),
        item.get("location"),
        item.get("category_id"),
        item.get("vendor_id"),
        json.dumps(item.get("specifications") or {}),
        item.get("purchase_price"),
        item.get("purchase_currency", "USD"),
        item.get("purchase_url"),
        item.get("datasheet_url"),
        item.get("notes"),
        json.dumps(item.get("tags") or []),
    ])
    return item_id


def add_image(
    conn: duckdb.DuckDBPyConnection,
    item_id: str,
    data: bytes,
    mime_type: str,
    original_filename: Optional[str] = None,
    is_primary: bool = False,
) -> str:
    image_id = str(uuid.uuid4())
    conn.execute("""
        INSERT INTO images (id, item_id, original_filename, mime_type, size_bytes, data, is_primary)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """, [image_id, item_id, original_filename, mime_type, len(data), data, is_primary])
    return image_id


def get_item(conn: duckdb.DuckDBPyConnection, item_id: str) -> Optional[Dict[str, Any]]:
    """Get item by ID with image metadata"""
    result = conn.execute("""
        SELECT i.id, i.name, i.description, i.tracking_mode, i.quantity, i.min_quantity,
               i.unit, i.serial_number, i.asset_tag, i.condition, i.purchase_date,
               i.warranty_expiry, i.location, i.category_id, c.name, i.vendor_id, v.name,
               i.specifications, i.purchase_price, i.purchase_currency, i.purchase_url,
               i.datasheet_url, i.notes, i.tags
        FROM items i
        LEFT JOIN categories c ON c.id = i.category_id
        LEFT JOIN vendors v ON v.id = i.vendor_id
        WHERE i.id = ?
    """, [item_id]).fetchone()

    if not result:
        return None

    images = conn.execute("""
        SELECT id, original_filename, mime_type, size_bytes, is_primary
        FROM images
        WHERE item_id = ?
        ORDER BY is_primary DESC, created_at
    """, [item_id]).fetchall()

    return {
        "id": result[0],
        "name": result[1],
        "description": result[2],
        "tracking_mode": result[3],
        "quantity": result[4],
        "min_quantity": result[5],
        "unit": result[6],
        "serial_number": result[7],
        "asset_tag": result[8],
        "condition": result[9],
        "purchase_date": result[10].isoformat() if result[10] else None,
        "warranty_expiry": result[11].isoformat() if result[11] else None,
        "location": result[12],
        "category_id": result[13],
        "category_name": result[14],
        "vendor_id": result[15],
        "vendor_name": result[16],
        "specifications": json.loads(result[17] or "{}"),
        "purchase_price": float(result[18]) if result[18] is not None else None,
        "purchase_currency": result[19],
        "purchase_url": result[20],
        "datasheet_url": result[21],
        "notes": result[22],
        "tags": json.loads(result[23] or "[]"),
        "images": [
            {
                "id": img[0],
                "original_filename": img[1],
                "mime_type": img[2],
                "size_bytes": img[3],
                "is_primary": bool(img[4]),
            }
            for img in images
        ],
    }
