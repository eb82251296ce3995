import asyncio
import os
import unittest
from datetime import datetime
from io import BytesIO
from unittest import mock

from PIL import Image
from sqlalchemy.dialects import mysql

from cliper.clients.storage_client import normalise_image
from cliper.database import AsyncSessionLocal, init_db
from cliper.errors import AuthError, ValidationError
from cliper.managers.content import list_user_posts, parse_hashtags
from cliper.managers.counters import bump
from cliper.models import Post, User
from cliper.pagination import split_page
from cliper.security import create_access_token, decode_access_token, hash_password, verify_password
from support import make_image


class SplitPageTests(unittest.TestCase):
    def test_extra_row_means_more(self):
        self.assertEqual(split_page([1, 2, 3], 2), ([1, 2], True))

    def test_exact_page_has_no_more(self):
        self.assertEqual(split_page([1, 2], 2), ([1, 2], False))
        self.assertEqual(split_page([], 5), ([], False))


class HashtagTests(unittest.TestCase):
    def test_parse(self):
        self.assertEqual(parse_hashtags(" travel, #sun ,, food "), ["travel", "#sun", "food"])
        self.assertEqual(parse_hashtags(""), [])
        self.assertEqual(parse_hashtags(None), [])


class SecurityTests(unittest.TestCase):
    def test_password_round_trip(self):
        hashed = hash_password("secret1")
        self.assertNotEqual(hashed, "secret1")
        self.assertTrue(verify_password("secret1", hashed))
        self.assertFalse(verify_password("secret2", hashed))
        self.assertFalse(verify_password("secret1", "not-a-bcrypt-hash"))

    def test_token_claims(self):
        claims = decode_access_token(create_access_token("u-1", "a@x.com"))
        self.assertEqual((claims["sub"], claims["email"]), ("u-1", "a@x.com"))
        self.assertGreater(claims["exp"], claims["iat"])

    def test_tampered_token(self):
        token = create_access_token("u-1", "a@x.com")
        with self.assertRaises(AuthError) as ctx:
            decode_access_token(token[:-2] + ("aa" if token[-2:] != "aa" else "bb"))
        self.assertEqual(ctx.exception.message, "Invalid token")


class NormaliseImageTests(unittest.TestCase):
    def test_small_image_keeps_size_and_becomes_jpeg(self):
        out = normalise_image(make_image(size=(200, 100), fmt="PNG"))
        with Image.open(BytesIO(out)) as img:
            self.assertEqual(img.format, "JPEG")
            self.assertEqual(img.size, (200, 100))

    def test_rgba_is_flattened(self):
        buf = BytesIO()
        Image.new("RGBA", (1600, 3200), (0, 0, 255, 128)).save(buf, format="PNG")
        with Image.open(BytesIO(normalise_image(buf.getvalue()))) as img:
            self.assertEqual(img.mode, "RGB")
            self.assertEqual(img.size, (540, 1080))

    def test_garbage_rejected(self):
        with self.assertRaises(ValidationError):
            normalise_image(b"definitely not an image")

    def test_decompression_bomb_rejected(self):
        with mock.patch.object(Image, "MAX_IMAGE_PIXELS", 1000):
            with self.assertRaises(ValidationError):
                normalise_image(make_image(size=(100, 100)))


class DatabaseTestCase(unittest.TestCase):
    def setUp(self):
        db_path = os.environ["CLIPER_TEST_DB"]
        if os.path.exists(db_path):
            os.remove(db_path)
        asyncio.run(init_db())


class CounterTests(DatabaseTestCase):

    async def _bump_and_read(self, deltas):
        async with AsyncSessionLocal() as db:
            user = User(email="c@x.com", username="counter", password_hash="x", full_name="C")
            db.add(user)
            await db.commit()
            for delta in deltas:
                await bump(db, User, User.user_id, user.user_id, "followers_count", delta)
            await db.commit()
            await db.refresh(user)
            return user.followers_count

    def test_increments_accumulate(self):
        self.assertEqual(asyncio.run(self._bump_and_read([1, 1, 1])), 3)

    def test_decrement_clamps_at_zero(self):
        self.assertEqual(asyncio.run(self._bump_and_read([1, -1, -1])), 0)


class OrderingTests(DatabaseTestCase):
    async def _page_through_same_second_posts(self):
        stamp = datetime(2024, 5, 1, 12, 0, 0)
        async with AsyncSessionLocal() as db:
            user = User(email="o@x.com", username="orderly", password_hash="x", full_name="O")
            db.add(user)
            await db.flush()
            posts = [
                Post(user_id=user.user_id, image_key=f"posts/{i}.jpg", created_at=stamp)
                for i in range(4)
            ]
            db.add_all(posts)
            await db.commit()

            seen = []
            for page in range(4):
                rows, _ = await list_user_posts(db, user.user_id, offset=page, limit=1)
                seen.extend(p.post_id for p in rows)
            return seen, sorted((p.post_id for p in posts), reverse=True)

    def test_equal_timestamps_page_without_repeats(self):
        seen, expected = asyncio.run(self._page_through_same_second_posts())
        self.assertEqual(seen, expected)

    def test_mysql_timestamps_keep_microseconds(self):
        column_type = Post.__table__.c.created_at.type
        compiled = column_type.compile(dialect=mysql.dialect())
        self.assertEqual(compiled, "DATETIME(6)")


if __name__ == "__main__":
    unittest.main()
