from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from bible_quiz.config import settings


class Base(DeclarativeBase):
    pass


def _build_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    built = create_engine(url, connect_args=connect_args)

    if url.startswith("sqlite"):
        # pysqlite defers BEGIN on its own, which breaks SAVEPOINT; emit BEGIN ourselves

        @event.listens_for(built, "connect")
        def _on_connect(dbapi_connection, _record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(built, "begin")
        def _on_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return built


engine = _build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    # models must be imported so their tables are registered on Base.metadata
    from bible_quiz import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
