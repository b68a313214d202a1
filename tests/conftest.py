import os
import tempfile

# must run before bible_quiz.config is imported
_db_dir = tempfile.mkdtemp(prefix="bible_quiz_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["APP_ENV"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ADMIN_EMAILS"] = "admin@example.com"

import pytest  # noqa: E402

from bible_quiz.database import Base, SessionLocal, engine, init_db  # noqa: E402


@pytest.fixture
def db():
    init_db()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
