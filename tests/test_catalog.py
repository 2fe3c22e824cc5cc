import io

import pytest
from sqlalchemy import select

from artshop.db import main_session
from artshop.models import CartItem, Order, OrderItem, Product, Section
from artshop.routes import catalog as catalog_routes
from artshop.routes.catalog import create_slug, parse_price, parse_tags
from artshop.storage import StorageError


def image(name="art.png", mimetype="image/png"):
    return (io.BytesIO(b"\x89PNG fake"), name, mimetype)


# ---------- helpers ----------
@pytest.mark.parametrize("raw,cents", [
    ("₹1,250.50", 125050),
    ("99", 9900),
    (10.5, 1050),
    (" 0.01 ", 1),
])
def test_parse_price(raw, cents):
    assert parse_price(raw) == cents


@pytest.mark.parametrize("raw", ["abc", "", "1.2.3", None])
def test_parse_price_rejects_garbage(raw):
    assert parse_price(raw) is None


def test_parse_tags_accepts_json_csv_and_lists():
    assert parse_tags('["oil", " sea "]') == ["oil", "sea"]
    assert parse_tags("oil, sea,,") == ["oil", "sea"]
    assert parse_tags(["a", ""]) == ["a"]
    assert parse_tags(None) is None


def test_create_slug():
    assert create_slug("Oil & Water  Colours") == "oil-water-colours"
    assert create_slug("  Small_Prints ") == "small-prints"


# ---------- public browsing ----------
def test_list_sections_empty(client):
    res = client.get("/sections")
    assert res.status_code == 200
    assert res.get_json() == {"sections": []}


def test_list_sections_nests_subsections_and_products(client, catalog):
    sections = client.get("/").get_json()["sections"]
    assert [s["name"] for s in sections] == ["Paintings", "Prints"]
    oil = sections[0]["children"][0]
    assert oil["name"] == "Oil on Canvas"
    assert oil["coverImage"] == "http://backend.test/api/github-image/sections/oil.jpg"
    harbour = oil["products"][0]
    assert harbour["price"] == 1500.0
    assert harbour["images"] == ["http://backend.test/api/github-image/products/harbour.jpg"]


def test_get_section(client, catalog):
    body = client.get("/Paintings").get_json()
    assert body["section"]["name"] == "Paintings"
    assert [s["name"] for s in body["subsections"]] == ["Oil on Canvas"]
    assert len(body["subsections"][0]["products"]) == 2


def test_get_section_unknown(client, catalog):
    res = client.get("/Sculpture")
    assert res.status_code == 404
    assert res.get_json() == {"error": "Section not found"}


def test_get_subsection_accepts_hyphenated_names(client, catalog):
    res = client.get("/Paintings/Oil-on-Canvas")
    assert res.status_code == 200
    body = res.get_json()
    assert body["mainSection"]["name"] == "Paintings"
    assert {p["title"] for p in body["products"]} == {"Monsoon Harbour", "Evening Fields"}


def test_subsection_must_belong_to_section(client, catalog):
    assert client.get("/Prints/Oil-on-Canvas").status_code == 404


# ---------- sections ----------
def test_create_section_requires_artist(client):
    assert client.post("/create-section", json={"name": "Sculpture"}).status_code == 401


def test_create_section(client, artist_headers):
    res = client.post("/create-section", json={"name": "Mixed Media", "description": "Assemblage"},
                      headers=artist_headers)
    assert res.status_code == 201
    body = res.get_json()
    assert body["slug"] == "mixed-media"
    assert body["section"]["parentId"] is None
    assert body["section"]["coverImage"] is None


def test_create_section_validation(client, artist_headers):
    assert client.post("/create-section", json={}, headers=artist_headers).status_code == 400
    reserved = client.post("/create-section", json={"name": "Cart"}, headers=artist_headers)
    assert reserved.status_code == 400


def test_create_section_uploads_cover(client, artist_headers, monkeypatch):
    uploads = []

    def fake_upload(file, folder):
        uploads.append((file.filename, folder))
        return {"key": "sections/abc.png"}

    monkeypatch.setattr(catalog_routes, "upload_file", fake_upload)
    res = client.post("/create-section", data={"name": "Sculpture", "image": image("cover.png")},
                      headers=artist_headers)
    assert res.status_code == 201
    assert uploads == [("cover.png", "sections")]
    assert res.get_json()["section"]["coverImage"] == "http://backend.test/api/github-image/sections/abc.png"


def test_create_section_rejects_non_images(client, artist_headers):
    res = client.post("/create-section",
                      data={"name": "Sculpture", "image": image("notes.txt", "text/plain")},
                      headers=artist_headers)
    assert res.status_code == 400
    assert res.get_json() == {"error": "Only image files are allowed!"}


def test_create_section_upload_failure(client, artist_headers, monkeypatch):
    def boom(file, folder):
        raise StorageError("bucket gone")

    monkeypatch.setattr(catalog_routes, "upload_file", boom)
    res = client.post("/create-section", data={"name": "Sculpture", "image": image()},
                      headers=artist_headers)
    assert res.status_code == 500


def test_create_subsection_creates_missing_parent(client, app, artist_headers):
    res = client.post("/Drawings/create-subsection", json={"name": "Charcoal"}, headers=artist_headers)
    assert res.status_code == 201
    body = res.get_json()
    assert body["parentSlug"] == "drawings"
    with app.app_context(), main_session() as db:
        parent = db.execute(select(Section).where(Section.name == "Drawings")).scalar_one()
        assert [c.name for c in parent.children] == ["Charcoal"]


def test_create_subsection_short_route(client, catalog, artist_headers):
    res = client.post("/Paintings", json={"name": "Acrylic"}, headers=artist_headers)
    assert res.status_code == 201
    assert res.get_json()["subsection"]["parentId"] == catalog.paintings


def test_update_and_delete_section(client, app, catalog, artist_headers):
    res = client.put("/Prints", json={"description": "Giclee"}, headers=artist_headers)
    assert res.status_code == 200
    assert res.get_json()["section"]["description"] == "Giclee"

    assert client.delete("/Prints", headers=artist_headers).status_code == 200
    with app.app_context(), main_session() as db:
        assert db.get(Product, catalog.lotus) is None
        assert db.get(Section, catalog.small) is None
    assert client.delete("/Prints", headers=artist_headers).status_code == 404


def test_update_subsection(client, catalog, artist_headers):
    res = client.put("/Paintings/Oil-on-Canvas", json={"name": "Oils"}, headers=artist_headers)
    assert res.status_code == 200
    assert client.get("/Paintings/Oils").status_code == 200


def test_update_unknown_section_uploads_nothing(client, catalog, artist_headers, monkeypatch):
    uploads = []
    monkeypatch.setattr(catalog_routes, "upload_file",
                        lambda file, folder: uploads.append(file.filename) or {"key": "sections/x.png"})
    res = client.put("/Nowhere", data={"image": image("cover.png")}, headers=artist_headers)
    assert res.status_code == 404
    res = client.put("/Paintings/Nowhere", data={"image": image("cover.png")}, headers=artist_headers)
    assert res.status_code == 404
    assert uploads == []

    res = client.put("/Prints", data={"image": image("cover.png")}, headers=artist_headers)
    assert res.status_code == 200
    assert uploads == ["cover.png"]


def test_rename_to_reserved_name_is_rejected(client, catalog, artist_headers):
    res = client.put("/Paintings", json={"name": "Cart"}, headers=artist_headers)
    assert res.status_code == 400
    assert res.get_json() == {"error": "'Cart' is a reserved name"}
    assert client.get("/Paintings").status_code == 200

    res = client.put("/Paintings/Oil-on-Canvas", json={"name": "orders"}, headers=artist_headers)
    assert res.status_code == 400
    assert client.get("/Paintings/Oil-on-Canvas").status_code == 200


def test_delete_subsection(client, catalog, artist_headers):
    assert client.delete("/Prints/Small", headers=artist_headers).status_code == 200
    assert client.get("/Prints/Small").status_code == 404


# ---------- products ----------
def test_add_product(client, catalog, artist_headers):
    res = client.post("/Paintings/Oil-on-Canvas/add-product",
                      json={"title": "Dawn", "price": "₹1,250.50", "tags": "oil, dawn"},
                      headers=artist_headers)
    assert res.status_code == 201
    product = res.get_json()["product"]
    assert product["price"] == 1250.5
    assert product["tags"] == ["oil", "dawn"]
    assert product["sectionId"] == catalog.oil
    assert res.get_json()["slug"] == "dawn"


def test_add_product_with_images(client, catalog, artist_headers, monkeypatch):
    monkeypatch.setattr(catalog_routes, "upload_files",
                        lambda files, folder: [{"key": f"{folder}/{i}.png"} for i, _ in enumerate(files)])
    res = client.post("/Paintings/Oil-on-Canvas/add-product",
                      data={"title": "Dawn", "price": "10", "images": [image(), image()]},
                      headers=artist_headers)
    assert res.status_code == 201
    assert len(res.get_json()["product"]["images"]) == 2


def test_add_product_limits_image_count(client, catalog, artist_headers):
    res = client.post("/Paintings/Oil-on-Canvas/add-product",
                      data={"title": "Dawn", "price": "10", "images": [image() for _ in range(11)]},
                      headers=artist_headers)
    assert res.status_code == 400


def test_add_product_validation(client, catalog, artist_headers):
    url = "/Paintings/Oil-on-Canvas/add-product"
    assert client.post(url, json={"title": "Dawn"}, headers=artist_headers).status_code == 400
    bad_price = client.post(url, json={"title": "Dawn", "price": "abc"}, headers=artist_headers)
    assert bad_price.status_code == 400
    assert bad_price.get_json() == {"error": "Invalid price format"}
    missing = client.post("/Paintings/Watercolour/add-product", json={"title": "Dawn", "price": "1"},
                          headers=artist_headers)
    assert missing.status_code == 404


def test_update_product_by_id_and_title(client, catalog, artist_headers):
    res = client.put(f"/Paintings/Oil-on-Canvas/{catalog.harbour}", json={"price": "99"},
                     headers=artist_headers)
    assert res.status_code == 200
    assert res.get_json()["product"]["price"] == 99.0

    res = client.put("/Paintings/Oil-on-Canvas/Evening-Fields", json={"tags": ["dusk"]},
                     headers=artist_headers)
    assert res.status_code == 200
    assert res.get_json()["product"]["tags"] == ["dusk"]


def test_update_product_with_non_ascii_digit_reference(client, catalog, artist_headers):
    res = client.put("/Paintings/Oil-on-Canvas/²", json={"price": "99"}, headers=artist_headers)
    assert res.status_code == 404
    assert res.get_json() == {"error": "Product not found"}


def test_update_product_appends_images(client, catalog, artist_headers, monkeypatch):
    monkeypatch.setattr(catalog_routes, "upload_files", lambda files, folder: [{"key": "products/new.png"}])
    res = client.put(f"/Paintings/Oil-on-Canvas/{catalog.harbour}", data={"images": [image()]},
                     headers=artist_headers)
    assert res.status_code == 200
    assert [u.rsplit("/", 1)[-1] for u in res.get_json()["product"]["images"]] == ["harbour.jpg", "new.png"]


def test_update_product_checks_location(client, catalog, artist_headers):
    res = client.put(f"/Prints/Small/{catalog.harbour}", json={"price": "1"}, headers=artist_headers)
    assert res.status_code == 404
    assert res.get_json() == {"error": "Product not found in the specified section/subsection"}
    res = client.put("/Prints/Small/99999", json={"price": "1"}, headers=artist_headers)
    assert res.get_json() == {"error": "Product not found"}


def test_delete_product_keeps_order_history(client, app, catalog, customer, artist_headers):
    with app.app_context(), main_session() as db:
        order = Order(user_id=customer.id, total_cents=160000, status="paid", payment_status="captured")
        order.items = [OrderItem(product_id=catalog.harbour, quantity=1, price_cents=150000)]
        db.add(order)
        db.add(CartItem(user_id=customer.id, product_id=catalog.harbour, quantity=1))
        db.commit()
        order_id = order.id

    res = client.delete(f"/Paintings/Oil-on-Canvas/{catalog.harbour}", headers=artist_headers)
    assert res.status_code == 200
    with app.app_context(), main_session() as db:
        assert db.get(Product, catalog.harbour) is None
        item = db.get(Order, order_id).items[0]
        assert item.product_id is None
        assert item.price_cents == 150000
        assert db.execute(select(CartItem)).scalars().all() == []
