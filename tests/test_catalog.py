"""Tests for the product catalog and its image lifecycle."""

import pytest
from pydantic import ValidationError as SchemaError

import catalog
from errors import DependencyError, NotFoundError, ValidationError
from schemas import ImageRef
from storage import LocalBlobStore, UploadedFile

PNG = b"\x89PNG\r\n\x1a\nfake"


def product_form(**overrides):
    data = {"name": "Sable brush", "category": "Brushes", "price": "9.5", "stock": "12"}
    data.update(overrides)
    return data


class TestImageRef:
    def test_both_or_neither(self):
        assert not ImageRef()
        assert ImageRef(url="https://x/1.png", public_id="products/1")
        with pytest.raises(SchemaError):
            ImageRef(url="https://x/1.png")
        with pytest.raises(SchemaError):
            ImageRef(public_id="products/1")


class TestProductRoutes:
    def test_public_listing(self, client, admin_client):
        admin_client.post("/api/products", data=product_form())
        response = client.get("/api/products")
        assert response.status_code == 200
        assert response.json()[0]["name"] == "Sable brush"

    def test_create_with_image(self, admin_client, blobs):
        response = admin_client.post(
            "/api/products", data=product_form(), files={"image": ("brush.png", PNG, "image/png")},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["price"] == 9.5
        assert body["stock"] == 12
        assert body["image"] == {"url": "https://blobs.example.com/products/1.png", "public_id": "products/1"}
        assert blobs.uploads == [("products", "brush.png", PNG)]

    def test_create_without_image(self, admin_client, blobs):
        body = admin_client.post("/api/products", data=product_form()).json()
        assert body["image"] == {"url": "", "public_id": ""}
        assert blobs.uploads == []

    def test_negative_price(self, admin_client, db):
        response = admin_client.post("/api/products", data=product_form(price="-1"))
        assert response.status_code == 400
        assert db["product"].count_documents({}) == 0

    def test_missing_name(self, admin_client):
        form = product_form()
        del form["name"]
        assert admin_client.post("/api/products", data=form).status_code == 422

    def test_upload_failure_fails_create(self, admin_client, blobs, db):
        blobs.fail_upload = True
        response = admin_client.post(
            "/api/products", data=product_form(), files={"image": ("brush.png", PNG, "image/png")},
        )
        assert response.status_code == 502
        assert db["product"].count_documents({}) == 0

    def test_get_unknown_and_malformed(self, client):
        assert client.get("/api/products/0123456789abcdef01234567").status_code == 404
        assert client.get("/api/products/nope").status_code == 400

    def test_partial_update(self, admin_client):
        created = admin_client.post("/api/products", data=product_form()).json()
        response = admin_client.put(f"/api/products/{created['id']}", data={"stock": "3"})
        assert response.status_code == 200
        assert response.json()["stock"] == 3
        assert response.json()["name"] == "Sable brush"

    def test_update_replaces_image(self, admin_client, blobs):
        created = admin_client.post(
            "/api/products", data=product_form(), files={"image": ("a.png", PNG, "image/png")},
        ).json()
        updated = admin_client.put(
            f"/api/products/{created['id']}", files={"image": ("b.png", PNG, "image/png")},
        ).json()
        assert updated["image"]["public_id"] == "products/2"
        assert blobs.destroyed == ["products/1"]

    def test_delete_with_image_destroys_blob_once(self, admin_client, blobs, db):
        created = admin_client.post(
            "/api/products", data=product_form(), files={"image": ("a.png", PNG, "image/png")},
        ).json()
        response = admin_client.delete(f"/api/products/{created['id']}")
        assert response.json() == {"message": "Product deleted successfully"}
        assert blobs.destroyed == ["products/1"]
        assert db["product"].count_documents({}) == 0

    def test_delete_without_image_destroys_nothing(self, admin_client, blobs):
        created = admin_client.post("/api/products", data=product_form()).json()
        admin_client.delete(f"/api/products/{created['id']}")
        assert blobs.destroyed == []

    def test_delete_unknown(self, admin_client):
        assert admin_client.delete("/api/products/0123456789abcdef01234567").status_code == 404


class TestCatalogService:
    def test_failed_destroy_keeps_record(self, db, blobs):
        product = catalog.create_product(db, blobs, {"name": "Easel", "price": 40, "stock": 1},
                                         UploadedFile(PNG, "easel.png"))
        blobs.fail_destroy = True
        with pytest.raises(DependencyError):
            catalog.delete_product(db, blobs, product.id)
        assert catalog.get_product(db, product.id).name == "Easel"

    def test_failed_destroy_of_replaced_image_is_tolerated(self, db, blobs):
        product = catalog.create_product(db, blobs, {"name": "Easel", "price": 40, "stock": 1},
                                         UploadedFile(PNG, "easel.png"))
        blobs.fail_destroy = True
        updated = catalog.update_product(db, blobs, product.id, {}, UploadedFile(PNG, "easel2.png"))
        assert updated.image.public_id == "products/2"

    def test_filter_and_search(self, db, blobs):
        catalog.create_product(db, blobs, {"name": "Sable brush", "category": "Brushes", "price": 9, "stock": 1})
        catalog.create_product(db, blobs, {"name": "Linen canvas", "category": "Canvas", "price": 20, "stock": 1})
        assert [p.name for p in catalog.list_products(db, category="Canvas")] == ["Linen canvas"]
        assert [p.name for p in catalog.list_products(db, q="SABLE")] == ["Sable brush"]

    def test_update_unknown(self, db, blobs):
        with pytest.raises(NotFoundError):
            catalog.update_product(db, blobs, "0123456789abcdef01234567", {"stock": 1})

    def test_invalid_stock(self, db, blobs):
        with pytest.raises(ValidationError):
            catalog.create_product(db, blobs, {"name": "Easel", "price": 1, "stock": -2})


class TestLocalBlobStore:
    def test_upload_and_destroy(self, tmp_path):
        store = LocalBlobStore(root=str(tmp_path))
        ref = store.upload(PNG, "Photo.PNG", "products")
        assert ref.url == f"/uploads/{ref.public_id}"
        assert ref.public_id.startswith("products/") and ref.public_id.endswith(".png")
        assert (tmp_path / ref.public_id).read_bytes() == PNG
        store.destroy(ref.public_id)
        assert not (tmp_path / ref.public_id).exists()

    def test_destroy_missing_is_quiet(self, tmp_path):
        LocalBlobStore(root=str(tmp_path)).destroy("products/none.png")

    def test_handle_cannot_escape_root(self, tmp_path):
        with pytest.raises(DependencyError):
            LocalBlobStore(root=str(tmp_path)).destroy("../outside.png")
