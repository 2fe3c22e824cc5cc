"""JSON shapes returned to the SPA, with storage keys resolved to URLs."""
from .storage import image_url, image_urls


def product_payload(p, with_section=False):
    d = p.to_dict()
    d["images"] = image_urls(p.images)
    if with_section and p.section is not None:
        d["section"] = section_payload(p.section)
    return d


def section_payload(s, children=False, products=False):
    d = s.to_dict()
    d["coverImage"] = image_url(s.cover_image) or None
    if children:
        d["children"] = [section_payload(c, products=products) for c in s.children]
    if products:
        d["products"] = [product_payload(p) for p in s.products]
    return d


def cart_item_payload(item, with_section=False):
    d = item.to_dict()
    d["product"] = product_payload(item.product, with_section=with_section)
    return d


def order_payload(order):
    d = order.to_dict()
    items = []
    for it in order.items:
        row = it.to_dict()
        row["product"] = product_payload(it.product, with_section=True) if it.product else None
        items.append(row)
    d["orderItems"] = items
    return d
