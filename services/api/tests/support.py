import os
import unittest
from io import BytesIO

from fastapi.testclient import TestClient
from PIL import Image

from cliper.main import create_app


def make_image(size=(64, 64), fmt="PNG", color="red") -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class ApiTestCase(unittest.TestCase):
    """Fresh database and app per test; the client runs the app lifespan."""

    def setUp(self):
        db_path = os.environ["CLIPER_TEST_DB"]
        if os.path.exists(db_path):
            os.remove(db_path)
        self.client = TestClient(create_app())
        self.client.__enter__()
        self.addCleanup(self.client.__exit__, None, None, None)

    def register(self, username, email=None, password="secret1", full_name=None):
        response = self.client.post(
            "/api/auth/register",
            json={
                "email": email or f"{username}@x.com",
                "password": password,
                "username": username,
                "fullName": full_name or username.title(),
            },
        )
        self.assertEqual(response.status_code, 201, response.text)
        payload = response.json()
        return payload["user"], payload["token"]

    def create_post(self, token, caption="", location="", hashtags="", image=None):
        response = self.client.post(
            "/api/posts",
            headers=bearer(token),
            data={"caption": caption, "location": location, "hashtags": hashtags},
            files={"image": ("photo.png", image or make_image(), "image/png")},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["post"]

    def follow(self, token, user_id):
        response = self.client.post(f"/api/follows/{user_id}", headers=bearer(token))
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def stats(self, user_id):
        response = self.client.get(f"/api/users/{user_id}/stats")
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()["stats"]

    def notifications(self, token, **params):
        response = self.client.get("/api/notifications", headers=bearer(token), params=params)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()
