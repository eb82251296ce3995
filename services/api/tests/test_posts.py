import unittest
from io import BytesIO
from unittest import mock

from PIL import Image

from cliper.clients.storage_client import get_storage
from support import ApiTestCase, bearer, make_image


class PostApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.alice, self.alice_token = self.register("alice", email="alice@x.com")
        self.bob, self.bob_token = self.register("bob", email="bob@x.com")

    def like(self, token, post_id):
        response = self.client.post(f"/api/posts/{post_id}/like", headers=bearer(token))
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()

    def get_post(self, post_id, token=None):
        headers = bearer(token) if token else {}
        response = self.client.get(f"/api/posts/{post_id}", headers=headers)
        self.assertEqual(response.status_code, 200, response.text)
        return response.json()["post"]

    # ── create ────────────────────────────────────────────────────────────

    def test_create_post(self):
        post = self.create_post(
            self.bob_token, caption="sunset", location="Lisbon", hashtags="travel, #sun,, food"
        )
        self.assertEqual(post["userId"], self.bob["id"])
        self.assertEqual(post["caption"], "sunset")
        self.assertEqual(post["location"], "Lisbon")
        self.assertEqual(post["hashtags"], ["travel", "#sun", "food"])
        self.assertEqual((post["likesCount"], post["commentsCount"]), (0, 0))
        self.assertTrue(post["imageUrl"])
        self.assertEqual(post["user"]["username"], "bob")
        self.assertEqual(self.stats(self.bob["id"])["postsCount"], 1)

    def test_create_post_downscales_image(self):
        self.create_post(self.bob_token, image=make_image(size=(2400, 1200)))
        storage = get_storage()
        (data, content_type), = storage.objects.values()
        self.assertEqual(content_type, "image/jpeg")
        with Image.open(BytesIO(data)) as img:
            self.assertEqual(img.size, (1080, 540))

    def test_create_post_requires_image(self):
        response = self.client.post(
            "/api/posts", headers=bearer(self.bob_token), data={"caption": "no image"}
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Image is required"})
        self.assertEqual(self.stats(self.bob["id"])["postsCount"], 0)

    def test_create_post_rejects_non_images(self):
        wrong_mime = self.client.post(
            "/api/posts",
            headers=bearer(self.bob_token),
            files={"image": ("notes.txt", b"hello", "text/plain")},
        )
        self.assertEqual(wrong_mime.status_code, 400)
        self.assertEqual(wrong_mime.json(), {"error": "Only image files are allowed"})

        corrupt = self.client.post(
            "/api/posts",
            headers=bearer(self.bob_token),
            files={"image": ("fake.png", b"not really a png", "image/png")},
        )
        self.assertEqual(corrupt.status_code, 400)

    def test_create_post_rejects_decompression_bomb(self):
        # anything over twice MAX_IMAGE_PIXELS is refused by Pillow outright
        with mock.patch.object(Image, "MAX_IMAGE_PIXELS", 1000):
            response = self.client.post(
                "/api/posts",
                headers=bearer(self.bob_token),
                files={"image": ("huge.png", make_image(size=(100, 100)), "image/png")},
            )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Uploaded file is not a valid image"})
        self.assertEqual(self.stats(self.bob["id"])["postsCount"], 0)

    def test_create_post_requires_auth(self):
        response = self.client.post(
            "/api/posts", files={"image": ("photo.png", make_image(), "image/png")}
        )
        self.assertEqual(response.status_code, 401)

    # ── feed ──────────────────────────────────────────────────────────────

    def test_feed_empty_when_following_nobody(self):
        self.create_post(self.bob_token)
        response = self.client.get("/api/posts/feed", headers=bearer(self.alice_token))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"posts": [], "hasMore": False})

    def test_feed_shows_followed_authors_newest_first(self):
        carol, carol_token = self.register("carol", email="carol@x.com")
        first = self.create_post(self.bob_token, caption="first")
        second = self.create_post(self.bob_token, caption="second")
        self.create_post(carol_token, caption="not followed")
        self.follow(self.alice_token, self.bob["id"])
        self.like(self.alice_token, first["id"])

        feed = self.client.get("/api/posts/feed", headers=bearer(self.alice_token)).json()
        self.assertEqual([p["id"] for p in feed["posts"]], [second["id"], first["id"]])
        self.assertEqual([p["isLiked"] for p in feed["posts"]], [False, True])
        self.assertFalse(feed["hasMore"])

        paged = self.client.get(
            "/api/posts/feed", headers=bearer(self.alice_token), params={"limit": 1}
        ).json()
        self.assertEqual(len(paged["posts"]), 1)
        self.assertTrue(paged["hasMore"])

    # ── likes ─────────────────────────────────────────────────────────────

    def test_like_toggle_scenario(self):
        post = self.create_post(self.bob_token)

        liked = self.like(self.alice_token, post["id"])
        self.assertEqual((liked["isLiked"], liked["likesCount"]), (True, 1))
        self.assertEqual(self.get_post(post["id"])["likesCount"], 1)
        self.assertTrue(self.get_post(post["id"], self.alice_token)["isLiked"])

        inbox = self.notifications(self.bob_token)["notifications"]
        self.assertEqual(len(inbox), 1)
        self.assertEqual(inbox[0]["type"], "like")
        self.assertEqual(inbox[0]["postId"], post["id"])
        self.assertFalse(inbox[0]["isRead"])

        unliked = self.like(self.alice_token, post["id"])
        self.assertEqual((unliked["isLiked"], unliked["likesCount"]), (False, 0))
        self.assertEqual(self.get_post(post["id"])["likesCount"], 0)
        self.assertFalse(self.get_post(post["id"], self.alice_token)["isLiked"])

    def test_like_own_post_does_not_notify(self):
        post = self.create_post(self.bob_token)
        self.like(self.bob_token, post["id"])
        self.assertEqual(self.notifications(self.bob_token)["notifications"], [])

    def test_like_missing_post(self):
        response = self.client.post("/api/posts/nope/like", headers=bearer(self.alice_token))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"error": "Post not found"})

    # ── comments ──────────────────────────────────────────────────────────

    def test_comment_creates_row_and_notifies_author(self):
        post = self.create_post(self.bob_token)
        response = self.client.post(
            f"/api/posts/{post['id']}/comments",
            headers=bearer(self.alice_token),
            json={"content": "  lovely shot  "},
        )
        self.assertEqual(response.status_code, 201)
        comment = response.json()["comment"]
        self.assertEqual(comment["content"], "lovely shot")
        self.assertEqual(comment["user"]["id"], self.alice["id"])
        self.assertEqual(self.get_post(post["id"])["commentsCount"], 1)

        note, = self.notifications(self.bob_token)["notifications"]
        self.assertEqual(note["type"], "comment")
        self.assertEqual(note["content"], 'commented: "lovely shot"')
        self.assertEqual(note["commentId"], comment["id"])

    def test_whitespace_comment_is_rejected(self):
        post = self.create_post(self.bob_token)
        response = self.client.post(
            f"/api/posts/{post['id']}/comments",
            headers=bearer(self.alice_token),
            json={"content": "   \n\t "},
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Comment content is required"})
        self.assertEqual(self.get_post(post["id"])["commentsCount"], 0)
        listed = self.client.get(f"/api/posts/{post['id']}/comments").json()
        self.assertEqual(listed["comments"], [])

    def test_self_comment_does_not_notify(self):
        post = self.create_post(self.bob_token)
        response = self.client.post(
            f"/api/posts/{post['id']}/comments",
            headers=bearer(self.bob_token),
            json={"content": "my own"},
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(self.notifications(self.bob_token)["notifications"], [])

    def test_comment_on_missing_post(self):
        response = self.client.post(
            "/api/posts/nope/comments", headers=bearer(self.alice_token), json={"content": "hi"}
        )
        self.assertEqual(response.status_code, 404)

    def test_list_comments_newest_first(self):
        post = self.create_post(self.bob_token)
        for text in ("one", "two", "three"):
            self.client.post(
                f"/api/posts/{post['id']}/comments",
                headers=bearer(self.alice_token),
                json={"content": text},
            )
        page = self.client.get(f"/api/posts/{post['id']}/comments", params={"limit": 2}).json()
        self.assertEqual([c["content"] for c in page["comments"]], ["three", "two"])
        self.assertTrue(page["hasMore"])

    # ── user posts ────────────────────────────────────────────────────────

    def test_list_user_posts(self):
        first = self.create_post(self.bob_token, caption="a")
        second = self.create_post(self.bob_token, caption="b")
        page = self.client.get(f"/api/posts/user/{self.bob['id']}").json()
        self.assertEqual([p["id"] for p in page["posts"]], [second["id"], first["id"]])
        self.assertFalse(page["hasMore"])

        empty = self.client.get(f"/api/posts/user/{self.alice['id']}").json()
        self.assertEqual(empty, {"posts": [], "hasMore": False})


if __name__ == "__main__":
    unittest.main()
