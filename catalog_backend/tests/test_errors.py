import os
import unittest
from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from catalog_backend.config import get_settings
from catalog_backend.errors import ApiError, setup_exception_handlers
from catalog_backend.tests.support import API, ApiTestCase


def failing_app() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/boom")
    def boom():
        raise RuntimeError("disk on fire")

    @app.get("/teapot")
    def teapot():
        raise ApiError(418, "Short and stout")

    return app


class ExceptionHandlerTests(unittest.TestCase):
    def setUp(self):
        get_settings.cache_clear()
        self.client = TestClient(failing_app(), raise_server_exceptions=False)

    def tearDown(self):
        self.client.close()
        get_settings.cache_clear()

    def test_unhandled_exception_is_500_with_stack_outside_production(self):
        with self.assertLogs("catalog_backend.errors", level="ERROR"):
            response = self.client.get("/boom")
        self.assertEqual(response.status_code, 500)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["message"], "Internal Server Error")
        self.assertIn("RuntimeError: disk on fire", payload["stack"])

    def test_stack_is_hidden_in_production(self):
        with patch.dict(os.environ, {"NODE_ENV": "production"}):
            get_settings.cache_clear()
            with self.assertLogs("catalog_backend.errors", level="ERROR"):
                response = self.client.get("/boom")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            response.json(), {"success": False, "message": "Internal Server Error"}
        )

    def test_api_error_keeps_its_status(self):
        response = self.client.get("/teapot")
        self.assertEqual(response.status_code, 418)
        self.assertEqual(response.json()["message"], "Short and stout")

    def test_unknown_route_uses_error_shape(self):
        response = self.client.get("/nowhere")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"success": False, "message": "Not Found"})


class ValidationErrorTests(ApiTestCase):
    def test_invalid_body_is_400_with_field_message(self):
        response = self.client.post(
            f"{API}/user/register", json={"email": "a@example.com", "password": "secret123"}
        )
        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertTrue(payload["message"].startswith("name: "), payload["message"])

    def test_malformed_json_is_400(self):
        response = self.client.post(
            f"{API}/user/register",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["success"])


if __name__ == "__main__":
    unittest.main()
