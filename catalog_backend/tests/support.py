"""
Shared fixtures for the API tests: in-memory backends, a fresh app per test
and helpers for logging in and building image uploads.
"""

import io
import os
import unittest

from fastapi.testclient import TestClient
from PIL import Image

os.environ.setdefault("CATALOG_USE_IN_MEMORY_BACKENDS", "1")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from catalog_backend.app import create_app  # noqa: E402
from catalog_backend.config import get_settings  # noqa: E402
from catalog_backend.dependencies import (  # noqa: E402
    get_database,
    get_response_cache,
    get_storage_client,
    reset_singletons,
)

API = "/api/v1"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "secret123"


def png_bytes(width=1200, height=600, color=(200, 30, 30)) -> bytes:
    image = Image.new("RGB", (width, height), color)
    out = io.BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


def image_file(name="photo.png", **kwargs):
    return (name, png_bytes(**kwargs), "image/png")


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        get_settings.cache_clear()
        reset_singletons()
        self.client = TestClient(create_app())
        self.database = get_database()
        self.storage = get_storage_client()
        self.cache = get_response_cache()

    def tearDown(self):
        self.client.close()
        reset_singletons()

    def register(self, name="Admin", email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
        return self.client.post(
            f"{API}/user/register",
            json={"name": name, "email": email, "password": password},
        )

    def login(self, email=ADMIN_EMAIL, password=ADMIN_PASSWORD) -> dict:
        response = self.client.post(
            f"{API}/user/login", json={"email": email, "password": password}
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.client.cookies.clear()
        return {"Authorization": f"Bearer {response.json()['data']}"}

    def admin_headers(self) -> dict:
        self.assertEqual(self.register().status_code, 201)
        return self.login()

    def user_with_role(self, admin_headers: dict, role: str, email: str) -> dict:
        response = self.client.post(
            f"{API}/user/create-role",
            json={"name": role, "email": email, "password": "secret123", "role": role},
            headers=admin_headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        return self.login(email=email, password="secret123")

    def create_category(self, headers: dict, name: str) -> dict:
        response = self.client.post(
            f"{API}/category", json={"name": name}, headers=headers
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]

    def create_subcategory(self, headers: dict, name: str, category_id: str, image=True):
        files = {"image": image_file("sub.png")} if image else None
        response = self.client.post(
            f"{API}/subcategory",
            data={"name": name, "categoryId": category_id},
            files=files,
            headers=headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]

    def create_product(self, headers: dict, title: str, **fields) -> dict:
        gallery = fields.pop("gallery", 0)
        data = {"title": title, "description": f"{title} description", "shortDesc": "short"}
        data.update(fields)
        files = [("image", image_file("thumb.png"))]
        files += [("images", image_file(f"g{i}.png")) for i in range(gallery)]
        response = self.client.post(
            f"{API}/product", data=data, files=files, headers=headers
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]
