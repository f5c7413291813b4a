import unittest
import uuid
from unittest.mock import patch

from catalog_backend.db import Product
from catalog_backend.storage import key_from_url
from catalog_backend.tests.support import API, ApiTestCase, image_file


class ProductApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.headers = self.admin_headers()
        self.tools = self.create_category(self.headers, "tools")

    def test_create_derives_slug_meta_and_defaults(self):
        first = self.create_product(
            self.headers,
            "Claw Hammer",
            categoryIds=self.tools["id"],
            description="<p>Forged steel head, fibreglass handle!</p>",
            price="19.90",
            gallery=2,
        )
        self.assertEqual(first["slug"], "claw-hammer")
        self.assertEqual(first["seoTitle"], "Claw Hammer")
        self.assertEqual(first["seoDesc"], "Forged steel head fibreglass handle")
        self.assertEqual(first["price"], 19.9)
        self.assertEqual(first["salePrice"], 0.0)
        self.assertEqual(len(first["images"]), 2)
        self.assertEqual([c["name"] for c in first["categories"]], ["tools"])
        self.assertEqual(len(self.storage.stored_objects), 3)

        second = self.create_product(self.headers, "Claw Hammer")
        self.assertEqual(second["slug"], "claw-hammer-1")
        self.assertEqual([c["name"] for c in second["categories"]], ["Uncategorized"])

    def test_create_filters_categories_and_subcategories(self):
        garden = self.create_category(self.headers, "garden")
        hammers = self.create_subcategory(self.headers, "hammers", self.tools["id"], image=False)
        rakes = self.create_subcategory(self.headers, "rakes", garden["id"], image=False)

        product = self.create_product(
            self.headers,
            "Mallet",
            **{
                "categoryIds[]": [self.tools["id"], "not-a-uuid"],
                "subCategoryIds": [hammers["id"], rakes["id"]],
            },
        )
        self.assertEqual([c["name"] for c in product["categories"]], ["tools"])
        self.assertEqual([s["name"] for s in product["subCategories"]], ["hammers"])

        unknown = self.client.post(
            f"{API}/product",
            data={"title": "Ghost", "categoryIds": str(uuid.uuid4())},
            files=[("image", image_file())],
            headers=self.headers,
        )
        self.assertEqual(unknown.status_code, 404)
        self.assertEqual(unknown.json()["message"], "No valid categories found")

    def test_create_requires_title_and_thumbnail(self):
        no_image = self.client.post(
            f"{API}/product", data={"title": "Saw"}, headers=self.headers
        )
        self.assertEqual(no_image.status_code, 400)
        self.assertEqual(no_image.json()["message"], "Please provide a valid image file")

        no_title = self.client.post(
            f"{API}/product",
            data={"title": " "},
            files=[("image", image_file())],
            headers=self.headers,
        )
        self.assertEqual(no_title.status_code, 400)

        too_many = self.client.post(
            f"{API}/product",
            data={"title": "Saw"},
            files=[("image", image_file())]
            + [("images", image_file(f"{i}.png", width=20, height=20)) for i in range(11)],
            headers=self.headers,
        )
        self.assertEqual(too_many.status_code, 400)
        self.assertEqual(self.storage.stored_objects, {})

    def test_uploads_removed_when_insert_fails(self):
        with patch(
            "catalog_backend.routes.products.transaction",
            side_effect=RuntimeError("database unavailable"),
        ):
            response = self.client.post(
                f"{API}/product",
                data={"title": "Saw"},
                files=[("image", image_file()), ("images", image_file("g.png"))],
                headers=self.headers,
            )
        self.assertEqual(response.status_code, 500)
        self.assertEqual(self.storage.stored_objects, {})
        listed = self.client.get(f"{API}/product").json()["data"]
        self.assertEqual(listed["totalProducts"], 0)

    def test_public_reads(self):
        for title in ("Alpha Saw", "Beta Saw", "Gamma Drill"):
            self.create_product(self.headers, title, categoryIds=self.tools["id"])

        listed = self.client.get(f"{API}/product").json()["data"]
        self.assertEqual([p["title"] for p in listed["products"]], ["Alpha Saw", "Beta Saw", "Gamma Drill"])
        self.assertEqual(listed["totalPages"], 1)

        one = self.client.get(f"{API}/product/product/beta-saw").json()["data"]
        self.assertEqual(one["title"], "Beta Saw")
        self.assertEqual(one["images"], [])
        self.assertEqual(one["categories"], [{"id": self.tools["id"], "name": "tools"}])
        self.assertEqual(self.client.get(f"{API}/product/product/nope").status_code, 404)

        found = self.client.get(f"{API}/product/user-search", params={"q": "<b>SAW</b>"}).json()
        self.assertEqual(found["message"], "Found 2 products")
        self.assertEqual(found["data"][0]["category"], "tools")
        short = self.client.get(f"{API}/product/user-search", params={"q": "s"}).json()
        self.assertEqual(short["data"], [])
        self.assertEqual(self.client.get(f"{API}/product/user-search").status_code, 400)

        export = self.client.get(f"{API}/product/all").json()["data"]
        self.assertEqual(export["totalProducts"], 3)
        row = export["products"][0]
        self.assertEqual(row["price"], "N/A")
        self.assertEqual(row["categories"], "tools")
        self.assertEqual(row["subCategories"], "N/A")

    def test_authenticated_reads(self):
        self.create_product(self.headers, "Orbital Sander", description="sands wood")
        self.assertEqual(self.client.get(f"{API}/product/search?q=x").status_code, 401)

        found = self.client.get(
            f"{API}/product/search", params={"q": "WOOD"}, headers=self.headers
        ).json()["data"]
        self.assertEqual([p["title"] for p in found], ["Orbital Sander"])
        self.assertEqual(
            self.client.get(f"{API}/product/search", headers=self.headers).status_code, 400
        )

        length = self.client.get(f"{API}/product/product-length", headers=self.headers)
        self.assertEqual(length.json()["data"], 1)
        dated = self.client.get(f"{API}/product/length-date", headers=self.headers)
        self.assertEqual(dated.json()["data"]["totalProducts"], 1)

        detail = self.client.get(f"{API}/product/orbital-sander", headers=self.headers)
        self.assertEqual(detail.json()["data"]["description"], "sands wood")

    def test_reads_are_cached_until_a_write(self):
        self.create_product(self.headers, "Alpha Saw")
        first = self.client.get(f"{API}/product").json()["data"]["totalProducts"]

        with self.database.Session() as session:
            session.add(Product(title="Direct", slug="direct"))
            session.commit()
        cached = self.client.get(f"{API}/product").json()["data"]["totalProducts"]
        self.assertEqual(cached, first)

        self.create_product(self.headers, "Beta Saw")
        fresh = self.client.get(f"{API}/product").json()["data"]["totalProducts"]
        self.assertEqual(fresh, first + 2)

    def test_update(self):
        garden = self.create_category(self.headers, "garden")
        created = self.create_product(
            self.headers, "Spade", categoryIds=self.tools["id"], gallery=2
        )
        old_objects = [created["image"]] + [img["url"] for img in created["images"]]

        bad_price = self.client.put(
            f"{API}/product/spade",
            data={"price": "cheap", "categoryIds": garden["id"]},
            headers=self.headers,
        )
        self.assertEqual(bad_price.status_code, 400)
        self.assertEqual(bad_price.json()["message"], "Invalid price format")

        response = self.client.put(
            f"{API}/product/spade",
            data={"title": "Garden Spade", "salePrice": "12.5", "categoryIds": garden["id"]},
            files=[("image", image_file("new.png")), ("images", image_file("g.png"))],
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200, response.text)
        updated = response.json()["data"]
        self.assertEqual(updated["slug"], "garden-spade")
        self.assertEqual(updated["salePrice"], 12.5)
        self.assertEqual([c["name"] for c in updated["categories"]], ["garden"])
        self.assertEqual(len(updated["images"]), 1)
        for url in old_objects:
            self.assertNotIn(key_from_url(url), self.storage.stored_objects)
        self.assertEqual(len(self.storage.stored_objects), 2)

        self.assertEqual(
            self.client.put(f"{API}/product/spade", data={}, headers=self.headers).status_code,
            404,
        )

    def test_new_uploads_removed_when_update_fails(self):
        created = self.create_product(self.headers, "Hoe", gallery=1)
        before = dict(self.storage.stored_objects)

        with patch(
            "catalog_backend.routes.products.transaction",
            side_effect=RuntimeError("database unavailable"),
        ):
            response = self.client.put(
                f"{API}/product/hoe",
                data={"title": "Garden Hoe"},
                files=[("image", image_file("new.png")), ("images", image_file("g.png"))],
                headers=self.headers,
            )
        self.assertEqual(response.status_code, 500)
        self.assertIn("database unavailable", response.json()["message"])
        self.assertEqual(self.storage.stored_objects, before)

        unchanged = self.client.get(f"{API}/product/hoe", headers=self.headers).json()["data"]
        self.assertEqual(unchanged["title"], "Hoe")
        self.assertEqual(unchanged["image"], created["image"])
        self.assertEqual(
            [img["url"] for img in unchanged["images"]],
            [img["url"] for img in created["images"]],
        )

    def test_delete_product_and_single_image(self):
        created = self.create_product(self.headers, "Rake", gallery=2)
        image_id = created["images"][0]["id"]

        self.assertEqual(
            self.client.post(
                f"{API}/product/delete-image", json={}, headers=self.headers
            ).status_code,
            400,
        )
        removed = self.client.post(
            f"{API}/product/delete-image", json={"imageId": image_id}, headers=self.headers
        )
        self.assertEqual(removed.status_code, 200)
        self.assertEqual(len(self.storage.stored_objects), 2)
        self.assertEqual(
            self.client.post(
                f"{API}/product/delete-image", json={"imageId": image_id}, headers=self.headers
            ).status_code,
            404,
        )

        deleted = self.client.delete(f"{API}/product/rake", headers=self.headers)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.storage.stored_objects, {})
        self.assertEqual(self.client.get(f"{API}/product/product/rake").status_code, 404)


if __name__ == "__main__":
    unittest.main()
