import re

from bson import ObjectId

from main import build_product_filter, parse_sort


def test_create_product_derives_slug(client, db, auth_headers):
    res = client.post(
        "/api/products",
        json={"title": "Ring Curtain  Deluxe!", "original_price": 1200, "discounted_price": 999},
        headers=auth_headers,
    )
    assert res.status_code == 201
    data = res.json()["data"]
    assert re.fullmatch(r"ring-curtain-deluxe-\d{4}", data["slug"])
    assert data["is_active"] is True
    assert data["images"] == []
    assert data["how_to_use"] == {"title": "", "points": []}
    assert db["product"].count_documents({}) == 1


def test_create_product_keeps_explicit_slug(client, auth_headers):
    res = client.post("/api/products", json={"title": "Sofa", "slug": "the-sofa"}, headers=auth_headers)
    assert res.json()["data"]["slug"] == "the-sofa"


def test_create_product_stores_category_reference(client, db, auth_headers):
    cat_id = ObjectId()
    res = client.post(
        "/api/products",
        json={"title": "Sofa", "category_id": str(cat_id), "category": "sofas"},
        headers=auth_headers,
    )
    doc = db["product"].find_one({"_id": ObjectId(res.json()["data"]["id"])})
    assert doc["category_id"] == cat_id
    assert doc["category"] == "sofas"


def test_create_product_rejects_bad_prices(client, db, auth_headers):
    res = client.post(
        "/api/products",
        json={"title": "Sofa", "original_price": 100, "discounted_price": 150},
        headers=auth_headers,
    )
    assert res.status_code == 400
    assert "Discounted price cannot be greater than original price" in res.json()["message"]

    res = client.post("/api/products", json={"title": "Sofa", "original_price": -1}, headers=auth_headers)
    assert res.status_code == 400
    assert db["product"].count_documents({}) == 0


def test_create_product_rejects_relative_image_urls(client, auth_headers):
    res = client.post("/api/products", json={"title": "Sofa", "images": ["/img/a.jpg"]}, headers=auth_headers)
    assert res.status_code == 400


def test_create_product_requires_admin(client, db):
    res = client.post("/api/products", json={"title": "Sofa"})
    assert res.status_code == 401
    assert db["product"].count_documents({}) == 0


def test_invalid_token_is_rejected(client):
    res = client.post("/api/products", json={"title": "Sofa"}, headers={"Authorization": "Bearer nonsense"})
    assert res.status_code == 401
    assert res.json() == {"success": False, "message": "Invalid token"}


def test_get_product_by_id_or_slug(client, add_product):
    product = add_product(title="Venetian Blind", slug="venetian-blind-1234")

    by_id = client.get(f"/api/products/{product['_id']}")
    by_slug = client.get("/api/products/venetian-blind-1234")
    assert by_id.status_code == 200
    assert by_slug.status_code == 200
    assert by_id.json()["data"]["id"] == by_slug.json()["data"]["id"] == str(product["_id"])


def test_get_product_not_found(client):
    assert client.get(f"/api/products/{ObjectId()}").status_code == 404
    res = client.get("/api/products/no-such-slug")
    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "Product not found"}


def test_update_product_rederives_slug_on_title_change(client, add_product, auth_headers):
    product = add_product(title="Old", slug="old-0001", original_price=500)

    res = client.put(f"/api/products/{product['_id']}", json={"title": "New Name"}, headers=auth_headers)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["title"] == "New Name"
    assert re.fullmatch(r"new-name-\d{4}", data["slug"])
    assert data["original_price"] == 500

    res = client.put(f"/api/products/{product['_id']}", json={"title": "Other", "slug": "kept"}, headers=auth_headers)
    assert res.json()["data"]["slug"] == "kept"


def test_update_product_checks_prices_against_stored_values(client, add_product, auth_headers):
    product = add_product(title="Sofa", original_price=100)
    res = client.put(f"/api/products/{product['_id']}", json={"discounted_price": 150}, headers=auth_headers)
    assert res.status_code == 400


def test_update_missing_product(client, auth_headers):
    res = client.put(f"/api/products/{ObjectId()}", json={"title": "x"}, headers=auth_headers)
    assert res.status_code == 404


def test_soft_deleted_products_are_hidden(client, db, add_product, auth_headers):
    product = add_product(title="Gone", slug="gone-0001", featured=True, category="Curtain")
    add_product(title="Stays", featured=True, category="Curtain")

    res = client.delete(f"/api/products/{product['_id']}", headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["message"] == "Product deleted successfully"

    titles = [p["title"] for p in client.get("/api/products").json()["data"]]
    featured = [p["title"] for p in client.get("/api/products/featured").json()["data"]]
    filtered = [p["title"] for p in client.get("/api/products/filter?category=Curtain").json()["data"]]
    assert titles == featured == filtered == ["Stays"]
    assert client.get(f"/api/products/{product['_id']}").status_code == 404
    assert client.get("/api/products/gone-0001").status_code == 404

    # still in the store
    assert db["product"].find_one({"_id": product["_id"]})["is_active"] is False


def test_featured_only_returns_featured(client, add_product):
    add_product(title="Plain")
    add_product(title="Star", featured=True)
    data = client.get("/api/products/featured").json()["data"]
    assert [p["title"] for p in data] == ["Star"]


def test_filter_price_matches_either_price(client, add_product):
    add_product(title="cheap", discounted_price=50, original_price=50)
    add_product(title="original-in-range", discounted_price=50, original_price=300)
    add_product(title="discount-in-range", discounted_price=200, original_price=900)
    add_product(title="too-expensive", discounted_price=600, original_price=800)

    res = client.get("/api/products/filter?minPrice=100&maxPrice=500")
    titles = sorted(p["title"] for p in res.json()["data"])
    assert titles == ["discount-in-range", "original-in-range"]


def test_filter_by_category_subcategory_and_materials(client, add_product):
    add_product(title="a", category="Curtain", subcategory="Ring Curtain", material_used=["linen"])
    add_product(title="b", category="Curtain", subcategory="Ring Curtain", material_used=["silk", "cotton"])
    add_product(title="c", category="Curtain", subcategory="Elizabeth Curtain", material_used=["silk"])
    add_product(title="d", category="Wallpaper", material_used=["silk"])

    res = client.get("/api/products/filter", params={
        "category": "Curtain", "subcategory": "Ring Curtain", "materials": "silk,linen",
    })
    assert sorted(p["title"] for p in res.json()["data"]) == ["a", "b"]

    res = client.get("/api/products/filter", params={"materials": "silk"})
    assert sorted(p["title"] for p in res.json()["data"]) == ["b", "c", "d"]


def test_filter_search_is_case_insensitive_across_fields(client, add_product):
    add_product(title="Velvet Cushion")
    add_product(title="Plain", description="soft VELVET finish")
    add_product(title="Other", subcategory="velvet range")
    add_product(title="Nothing")

    res = client.get("/api/products/filter?search=velvet")
    assert sorted(p["title"] for p in res.json()["data"]) == ["Other", "Plain", "Velvet Cushion"]


def test_filter_search_and_price_both_apply(client, add_product):
    add_product(title="Velvet cheap", original_price=50)
    add_product(title="Velvet mid", original_price=300)
    add_product(title="Linen mid", original_price=300)

    res = client.get("/api/products/filter?search=velvet&minPrice=100&maxPrice=500")
    assert [p["title"] for p in res.json()["data"]] == ["Velvet mid"]


def test_filter_search_is_literal_text(client, add_product):
    add_product(title="Sofa (3 seater)")
    add_product(title="Sofa 3 seater")
    res = client.get("/api/products/filter", params={"search": "(3 seater)"})
    assert [p["title"] for p in res.json()["data"]] == ["Sofa (3 seater)"]


def test_filter_pagination(client, add_product):
    for i in range(25):
        add_product(title=f"P{i + 1:02d}")

    res = client.get("/api/products/filter?page=2&limit=10")
    body = res.json()
    assert [p["title"] for p in body["data"]] == [f"P{i:02d}" for i in range(11, 21)]
    assert body["pagination"] == {"total": 25, "page": 2, "limit": 10, "pages": 3}


def test_filter_sort_descending(client, add_product):
    add_product(title="a", original_price=10)
    add_product(title="b", original_price=30)
    add_product(title="c", original_price=20)
    res = client.get("/api/products/filter?sort=-original_price")
    assert [p["title"] for p in res.json()["data"]] == ["b", "c", "a"]


def test_filter_bad_pagination_falls_back_to_defaults(client, add_product):
    add_product(title="only")
    body = client.get("/api/products/filter?page=abc&limit=0").json()
    assert body["pagination"]["page"] == 1
    assert body["pagination"]["limit"] == 12


def test_build_filter_without_price_or_search():
    assert build_product_filter(category="Curtain") == {"is_active": True, "category": "Curtain"}


def test_build_filter_zero_min_price_is_a_bound():
    flt = build_product_filter(min_price=0)
    assert flt["$or"] == [{"discounted_price": {"$gte": 0}}, {"original_price": {"$gte": 0}}]


def test_parse_sort():
    assert parse_sort("createdAt") == [("created_at", 1), ("_id", 1)]
    assert parse_sort("-updatedAt title") == [("updated_at", -1), ("title", 1), ("_id", 1)]
    assert parse_sort("") == [("created_at", 1), ("_id", 1)]
