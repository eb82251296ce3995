"""
Test environment: SQLite through aiosqlite, in-memory media storage, no
trace export and cheap bcrypt. Must be applied before `cliper` is imported.
"""
import os
import tempfile

_TEST_DB = os.path.join(tempfile.mkdtemp(prefix="cliper-tests-"), "cliper.db")

os.environ.setdefault("CLIPER_TEST_DB", _TEST_DB)
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.environ['CLIPER_TEST_DB']}"
os.environ["USE_IN_MEMORY_STORAGE"] = "true"
os.environ["ENABLE_TRACING"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
