"""
Bootstrap data: the first admin account and the default category taxonomy.

Usage:
    ADMIN_USERNAME=admin ADMIN_PASSWORD=secret python seed.py
Both steps upsert, so the script is safe to re-run.
"""

import logging
import os

from pymongo.database import Database

from auth import hash_password
from database import create_document, ensure_indexes, get_db, now
from schemas import Admin, Category

logger = logging.getLogger(__name__)

TAXONOMY = [
    {"name": "Curtain", "subcategories": ["Ring Curtain", "American Pleat Curtains", "Elizabeth Curtain"], "display_order": 1},
    {"name": "Window Blinds", "subcategories": ["Venetian Blinds"], "display_order": 2},
    {"name": "Wallpaper", "subcategories": ["Regular", "Roll Form Wallpaper"], "display_order": 3},
    {"name": "Mattresses", "subcategories": ["Innerspring Mattress"], "display_order": 4},
    {"name": "sofas", "subcategories": [], "display_order": 5},
    {"name": "bedbacks", "subcategories": [], "display_order": 6},
    {"name": "Flooring", "subcategories": ["Wooden Flooring", "Vinyl Flooring"], "display_order": 7},
    {"name": "Bedsheet", "subcategories": ["cotton bedsheets"], "display_order": 8},
    {"name": "Towel", "subcategories": ["Bath Towels"], "display_order": 9},
    {"name": "Comforter", "subcategories": ["cotton comforter"], "display_order": 10},
    {"name": "Mattress Protector", "subcategories": ["Waterproof Mattress Protector"], "display_order": 11},
    {"name": "Doormat", "subcategories": ["rubber door mat"], "display_order": 12},
    {"name": "Bedrunner", "subcategories": ["cotton bedrunner"], "display_order": 13},
    {"name": "Pillow", "subcategories": ["Memory Foam Pillow"], "display_order": 14},
]


def seed_admin(db: Database, username: str, password: str, full_name: str = None, email: str = None) -> str:
    """Create the admin, or reset its password when it already exists. Returns the id."""
    admin = Admin(username=username, password_hash=hash_password(password), full_name=full_name, email=email)
    existing = db["admin"].find_one({"username": admin.username})
    if existing:
        db["admin"].update_one(
            {"_id": existing["_id"]},
            {"$set": {
                "password_hash": admin.password_hash,
                "full_name": admin.full_name,
                "email": admin.email,
                "is_active": True,
                "updated_at": now(),
            }},
        )
        logger.info("Admin %s already existed, password updated", admin.username)
        return str(existing["_id"])
    _id = create_document(db, "admin", admin)
    logger.info("Admin %s created", admin.username)
    return _id


def seed_categories(db: Database, taxonomy=None) -> int:
    """Upsert categories by name; returns how many were newly inserted."""
    inserted = 0
    for entry in taxonomy or TAXONOMY:
        cat = Category(**entry)
        existing = db["category"].find_one({"name": cat.name})
        if existing:
            db["category"].update_one(
                {"_id": existing["_id"]},
                {"$set": {"subcategories": cat.subcategories, "display_order": cat.display_order, "updated_at": now()}},
            )
        else:
            create_document(db, "category", cat)
            inserted += 1
    logger.info("Seeded categories, %d new", inserted)
    return inserted


def main():
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    username = os.getenv("ADMIN_USERNAME", "admin")
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        raise SystemExit("ADMIN_PASSWORD must be set")

    db = get_db()
    ensure_indexes(db)
    seed_admin(db, username, password, os.getenv("ADMIN_FULL_NAME", "System Admin"), os.getenv("ADMIN_EMAIL"))
    seed_categories(db)


if __name__ == "__main__":
    main()
