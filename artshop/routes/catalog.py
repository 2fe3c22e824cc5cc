import json
import logging
import re
from decimal import Decimal, InvalidOperation

from flask import Blueprint, jsonify, request
from sqlalchemy import select
from sqlalchemy.orm import aliased

from ..auth import artist_required
from ..db import main_session
from ..models import Product, Section
from ..payloads import product_payload, section_payload
from ..storage import MAX_IMAGES, StorageError, upload_file, upload_files

log = logging.getLogger(__name__)

bp = Blueprint("catalog", __name__)

# first path segments owned by other blueprints
RESERVED_NAMES = {"api", "auth", "cart", "orders", "payment", "reviews", "users", "wishlist",
                  "signup", "login", "adminlogin", "health", "sections", "image", "create-section"}


# ---------- helpers ----------
def create_slug(text):
    s = text.lower().strip()
    s = re.sub(r"[^\w\s-]", "", s)
    s = re.sub(r"[\s_-]+", "-", s)
    return s.strip("-")


def name_variants(segment):
    """A URL segment matches a stored name literally or with hyphens as spaces."""
    return list({segment, segment.replace("-", " ")})


def parse_price(raw):
    """'₹1,250.50' -> 125050 cents; None when unparsable."""
    if isinstance(raw, (int, float)):
        raw = str(raw)
    cleaned = re.sub(r"[^\d.]", "", raw or "")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    return int((value * 100).quantize(Decimal("1")))


def parse_tags(raw):
    if raw is None:
        return None
    if isinstance(raw, list):
        return [str(t).strip() for t in raw if str(t).strip()]
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, list):
            return [str(t).strip() for t in parsed if str(t).strip()]
    except ValueError:
        pass
    return [t.strip() for t in str(raw).split(",") if t.strip()]


def _fields():
    if request.form:
        return request.form
    return request.get_json(silent=True) or {}


def _image_files(field, limit):
    files = [f for f in request.files.getlist(field) if f and f.filename]
    if len(files) > limit:
        return None, (jsonify({"error": f"At most {limit} images are allowed"}), 400)
    for f in files:
        if not (f.mimetype or "").startswith("image/"):
            return None, (jsonify({"error": "Only image files are allowed!"}), 400)
    return files, None


def find_main_section(db, segment):
    return db.execute(
        select(Section).where(Section.parent_id.is_(None), Section.name.in_(name_variants(segment)))
        .order_by(Section.id)
    ).scalars().first()


def find_subsection(db, section_segment, subsection_segment):
    parent = aliased(Section)
    return db.execute(
        select(Section).join(parent, Section.parent_id == parent.id)
        .where(Section.name.in_(name_variants(subsection_segment)),
               parent.name.in_(name_variants(section_segment)),
               parent.parent_id.is_(None))
        .order_by(Section.id)
    ).scalars().first()


def find_product(db, section_segment, subsection_segment, identifier):
    """Product by numeric id or by title, checked against its subsection and section."""
    if identifier.isascii() and identifier.isdigit():
        p = db.get(Product, int(identifier))
    else:
        p = db.execute(
            select(Product).where(Product.title.in_(name_variants(identifier))).order_by(Product.id)
        ).scalars().first()
    if not p:
        return None, "Product not found"
    sub = p.section
    main = sub.parent if sub else None
    if not sub or sub.name not in name_variants(subsection_segment) \
            or not main or main.name not in name_variants(section_segment):
        return None, "Product not found in the specified section/subsection"
    return p, None


def _upload_cover():
    files, err = _image_files("image", 1)
    if err:
        return None, err
    if not files:
        return None, None
    try:
        return upload_file(files[0], "sections")["key"], None
    except StorageError as e:
        log.error(f"Error uploading section image: {e}")
        return None, (jsonify({"error": "Failed to upload image"}), 500)


def sections_payload():
    with main_session() as db:
        sections = db.execute(
            select(Section).where(Section.parent_id.is_(None)).order_by(Section.id)
        ).scalars().all()
        payload = []
        for s in sections:
            d = section_payload(s)
            d["children"] = [section_payload(c, products=True) for c in s.children]
            payload.append(d)
        return {"sections": payload}


# --------------------------- PUBLIC ---------------------------
@bp.get("/")
@bp.get("/sections")
def list_sections():
    return jsonify(sections_payload())


@bp.get("/<section_name>")
def get_section(section_name):
    with main_session() as db:
        section = find_main_section(db, section_name)
        if not section:
            return jsonify({"error": "Section not found"}), 404
        subsections = [section_payload(c, products=True) for c in section.children]
        payload = section_payload(section)
        payload["children"] = subsections
        return jsonify({"section": payload, "subsections": subsections})


@bp.get("/<section_name>/<subsection_name>")
def get_subsection(section_name, subsection_name):
    with main_session() as db:
        sub = find_subsection(db, section_name, subsection_name)
        if not sub:
            return jsonify({"error": "Subsection not found"}), 404
        return jsonify({
            "subsection": section_payload(sub),
            "products": [product_payload(p) for p in sub.products],
            "mainSection": section_payload(sub.parent),
        })


# --------------------------- ARTIST: CREATE ---------------------------
@bp.post("/create-section")
@artist_required
def create_section():
    data = _fields()
    name = (data.get("name") or "").strip()
    if not name:
        return jsonify({"error": "Section name is required"}), 400
    if create_slug(name) in RESERVED_NAMES:
        return jsonify({"error": f"'{name}' is a reserved name"}), 400

    cover, err = _upload_cover()
    if err:
        return err
    with main_session() as db:
        s = Section(name=name, description=data.get("description"), cover_image=cover)
        db.add(s)
        db.commit()
        log.info(f"Created section {name!r}")
        return jsonify({
            "message": "Main section created successfully",
            "section": section_payload(s),
            "slug": create_slug(name),
        }), 201


@bp.post("/<section_name>")
@bp.post("/<section_name>/create-subsection")
@artist_required
def create_subsection(section_name):
    data = _fields()
    name = (data.get("name") or "").strip()
    if not name:
        return jsonify({"error": "Section name and subsection name are required"}), 400
    if section_name in RESERVED_NAMES:
        return jsonify({"error": f"'{section_name}' is a reserved name"}), 400

    cover, err = _upload_cover()
    if err:
        return err
    with main_session() as db:
        parent = find_main_section(db, section_name)
        if not parent:
            parent_name = section_name.replace("-", " ")
            parent = Section(name=parent_name, description=f"{parent_name} section")
            db.add(parent)
            db.flush()
            log.info(f"Created missing parent section {parent_name!r}")
        sub = Section(name=name, description=data.get("description"), cover_image=cover,
                      parent_id=parent.id)
        db.add(sub)
        db.commit()
        log.info(f"Created subsection {name!r} under {parent.name!r}")
        return jsonify({
            "message": "Subsection created successfully",
            "subsection": section_payload(sub),
            "slug": create_slug(name),
            "parentSlug": create_slug(parent.name),
        }), 201


@bp.post("/<section_name>/<subsection_name>/add-product")
@artist_required
def add_product(section_name, subsection_name):
    data = _fields()
    title = (data.get("title") or "").strip()
    price = data.get("price")
    if not title or price in (None, ""):
        return jsonify({"error": "Section name, subsection name, title, and price are required"}), 400
    price_cents = parse_price(price)
    if price_cents is None:
        return jsonify({"error": "Invalid price format"}), 400
    files, err = _image_files("images", MAX_IMAGES)
    if err:
        return err

    with main_session() as db:
        sub = find_subsection(db, section_name, subsection_name)
        if not sub:
            return jsonify({"error": "Subsection not found"}), 404
        try:
            keys = [r["key"] for r in upload_files(files, "products")]
        except StorageError as e:
            log.error(f"Error uploading product images: {e}")
            return jsonify({"error": "Failed to upload images"}), 500

        p = Product(title=title, description=data.get("description"), price_cents=price_cents,
                    tags=parse_tags(data.get("tags")) or [], images=keys, section_id=sub.id)
        db.add(p)
        db.commit()
        log.info(f"Created product #{p.id} {title!r} with {len(keys)} image(s)")
        return jsonify({
            "message": "Product created successfully",
            "product": product_payload(p),
            "slug": create_slug(title),
        }), 201


# --------------------------- ARTIST: UPDATE ---------------------------
def _reserved_rename(data):
    name = (data.get("name") or "").strip()
    if name and create_slug(name) in RESERVED_NAMES:
        return jsonify({"error": f"'{name}' is a reserved name"}), 400
    return None


def _apply_section_update(s, data, cover):
    name = (data.get("name") or "").strip()
    if name:
        s.name = name
    if "description" in data:
        s.description = data.get("description")
    if cover:
        s.cover_image = cover


@bp.put("/<section_name>")
@artist_required
def update_section(section_name):
    data = _fields()
    err = _reserved_rename(data)
    if err:
        return err
    with main_session() as db:
        s = find_main_section(db, section_name)
        if not s:
            return jsonify({"error": "Section not found"}), 404
        cover, err = _upload_cover()
        if err:
            return err
        _apply_section_update(s, data, cover)
        db.commit()
        return jsonify({"message": "Section updated successfully", "section": section_payload(s)})


@bp.put("/<section_name>/<subsection_name>")
@artist_required
def update_subsection(section_name, subsection_name):
    data = _fields()
    err = _reserved_rename(data)
    if err:
        return err
    with main_session() as db:
        sub = find_subsection(db, section_name, subsection_name)
        if not sub:
            return jsonify({"error": "Subsection not found"}), 404
        cover, err = _upload_cover()
        if err:
            return err
        _apply_section_update(sub, data, cover)
        db.commit()
        return jsonify({"message": "Subsection updated successfully", "subsection": section_payload(sub)})


@bp.put("/<section_name>/<subsection_name>/<product_ref>")
@artist_required
def update_product(section_name, subsection_name, product_ref):
    data = _fields()
    files, err = _image_files("images", MAX_IMAGES)
    if err:
        return err

    with main_session() as db:
        p, missing = find_product(db, section_name, subsection_name, product_ref)
        if missing:
            return jsonify({"error": missing}), 404

        if "price" in data:
            price_cents = parse_price(data.get("price"))
            if price_cents is None:
                return jsonify({"error": "Invalid price format"}), 400
            p.price_cents = price_cents
        if data.get("title"):
            p.title = data.get("title").strip()
        if "description" in data:
            p.description = data.get("description")
        tags = parse_tags(data.get("tags"))
        if tags is not None:
            p.tags = tags
        if files:
            try:
                new_keys = [r["key"] for r in upload_files(files, "products")]
            except StorageError as e:
                log.error(f"Error uploading new product images: {e}")
                return jsonify({"error": "Failed to upload new images"}), 500
            p.images = list(p.images or []) + new_keys
        db.commit()
        return jsonify({"message": "Product updated successfully", "product": product_payload(p)})


# --------------------------- ARTIST: DELETE ---------------------------
@bp.delete("/<section_name>")
@artist_required
def delete_section(section_name):
    with main_session() as db:
        s = find_main_section(db, section_name)
        if not s:
            return jsonify({"error": "Section not found"}), 404
        db.delete(s)
        db.commit()
        log.info(f"Deleted section {section_name!r} with its subsections and products")
    return jsonify({"message": "Section deleted successfully"})


@bp.delete("/<section_name>/<subsection_name>")
@artist_required
def delete_subsection(section_name, subsection_name):
    with main_session() as db:
        sub = find_subsection(db, section_name, subsection_name)
        if not sub:
            return jsonify({"error": "Subsection not found"}), 404
        db.delete(sub)
        db.commit()
    return jsonify({"message": "Subsection deleted successfully"})


@bp.delete("/<section_name>/<subsection_name>/<product_ref>")
@artist_required
def delete_product(section_name, subsection_name, product_ref):
    with main_session() as db:
        p, missing = find_product(db, section_name, subsection_name, product_ref)
        if missing:
            return jsonify({"error": missing}), 404
        db.delete(p)
        db.commit()
    return jsonify({"message": "Product deleted successfully"})
