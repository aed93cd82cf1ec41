from utils.guards import parse_object_id


def build_catalog_entry(product: dict) -> dict:
    return {
        "id": product["_id"],
        "name": product.get("name"),
        "price": product.get("price"),
        "seller": product.get("seller_id"),
    }


async def get_products_by_ids(db, ids) -> list[dict]:
    """Catalog lookup used for seller attribution."""
    oids = list({parse_object_id(i, "product_id") for i in ids})
    if not oids:
        return []

    cursor = db.products.find(
        {"_id": {"$in": oids}},
        {"name": 1, "price": 1, "seller_id": 1},
    )
    return [build_catalog_entry(p) async for p in cursor]


async def get_products_map(db, ids) -> dict[str, dict]:
    return {str(p["id"]): p for p in await get_products_by_ids(db, ids)}
