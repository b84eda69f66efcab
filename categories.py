# categories.py
from fastapi import APIRouter, Depends

from settings import get_catalog

router = APIRouter(tags=["categories"])


def distinct_categories(rows):
    """Non-empty categories in first-seen order."""
    seen = {}
    for category, _image in rows:
        category = (category or "").strip()
        if category and category not in seen:
            seen[category] = True
    return list(seen)


def categories_with_images(rows):
    """
    One entry per category. The first non-empty image seen for a category
    becomes its picture, even if earlier rows of that category had none.
    """
    out = {}
    for category, image in rows:
        category = (category or "").strip()
        if not category:
            continue
        image = image or None
        entry = out.get(category)
        if entry is None:
            out[category] = {"category_name": category, "image_url": image, "has_image": bool(image)}
        elif entry["image_url"] is None and image:
            entry["image_url"] = image
            entry["has_image"] = True
    return list(out.values())


# ─────────────────────────────────────────────────────────
# 1) Category names
# ─────────────────────────────────────────────────────────
@router.get("/categories")
async def list_categories(catalog=Depends(get_catalog)):
    rows = await catalog.category_rows()
    return {"categories": distinct_categories(rows)}


# ─────────────────────────────────────────────────────────
# 2) Category tiles for the home screen
# ─────────────────────────────────────────────────────────
@router.get("/categories-with-images")
async def list_categories_with_images(catalog=Depends(get_catalog)):
    rows = await catalog.category_rows()
    return {"categories": categories_with_images(rows)}


# ─────────────────────────────────────────────────────────
# 3) Brand → logo map
# ─────────────────────────────────────────────────────────
@router.get("/brandLogos")
async def brand_logos(catalog=Depends(get_catalog)):
    rows = await catalog.brand_logo_rows()
    logos = {}
    for brand, image in rows:
        if brand and image:
            logos[brand] = image
    return {"brandLogos": logos}
