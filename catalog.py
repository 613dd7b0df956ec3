"""
Product catalog.

Image lifecycle: uploads go to the blob store before the record is written;
deleting a product destroys its blob first and keeps the record if that fails.
An upload followed by a failed insert leaves an orphaned blob.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError as SchemaError
from pymongo.database import Database

from database import as_utc, create_document, get_documents, to_object_id
from errors import NotFoundError, schema_error
from schemas import ImageRef, Product, ProductOut
from storage import BlobStore, UploadedFile

logger = logging.getLogger(__name__)

PRODUCT_FOLDER = "products"


def _out(doc: dict) -> ProductOut:
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    doc["created_at"] = as_utc(doc.get("created_at"))
    return ProductOut(**doc)


def _find(db: Database, product_id: str) -> dict:
    doc = db["product"].find_one({"_id": to_object_id(product_id)})
    if not doc:
        raise NotFoundError("Product not found")
    return doc


def list_products(db: Database, category: Optional[str] = None, q: Optional[str] = None) -> List[ProductOut]:
    query = {}
    if category:
        query["category"] = category
    if q:
        query["name"] = {"$regex": re.escape(q), "$options": "i"}
    docs = get_documents("product", query, sort=[("created_at", -1)], using=db)
    return [_out(d) for d in docs]


def get_product(db: Database, product_id: str) -> ProductOut:
    return _out(_find(db, product_id))


def create_product(db: Database, blobs: BlobStore, fields: dict, image: Optional[UploadedFile] = None) -> ProductOut:
    try:
        product = Product(**fields)
    except SchemaError as e:
        raise schema_error(e)
    if image is not None:
        product.image = blobs.upload(image.data, image.filename, PRODUCT_FOLDER)
    try:
        product_id = create_document("product", product, using=db)
    except Exception:
        if product.image:
            logger.warning("Product insert failed, blob %s orphaned", product.image.public_id)
        raise
    return get_product(db, product_id)


def update_product(db: Database, blobs: BlobStore, product_id: str, fields: dict,
                   image: Optional[UploadedFile] = None) -> ProductOut:
    doc = _find(db, product_id)
    current = {k: doc[k] for k in Product.model_fields if doc.get(k) is not None}
    current.update({k: v for k, v in fields.items() if v is not None})
    try:
        product = Product(**current)
    except SchemaError as e:
        raise schema_error(e)

    old_image = product.image
    if image is not None:
        product.image = blobs.upload(image.data, image.filename, PRODUCT_FOLDER)

    update = product.model_dump()
    update["updated_at"] = datetime.now(timezone.utc)
    db["product"].update_one({"_id": doc["_id"]}, {"$set": update})

    if image is not None and old_image:
        try:
            blobs.destroy(old_image.public_id)
        except Exception as e:
            # the record already points at the new image
            logger.warning("Could not remove replaced image %s: %s", old_image.public_id, e)
    return get_product(db, product_id)


def delete_product(db: Database, blobs: BlobStore, product_id: str) -> None:
    doc = _find(db, product_id)
    image = ImageRef(**(doc.get("image") or {}))
    if image:
        blobs.destroy(image.public_id)
    db["product"].delete_one({"_id": doc["_id"]})
    logger.info("Deleted product %s", product_id)
