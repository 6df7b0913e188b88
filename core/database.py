from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from core.config import settings
# Use the same Base as models to ensure one metadata registry
from models.base import Base


def enable_sqlite_foreign_keys(dbapi_conn, connection_record):
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, **kwargs):
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        eng = create_engine(url, connect_args=connect_args, future=True, **kwargs)
        event.listen(eng, "connect", enable_sqlite_foreign_keys)
        return eng
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=3600,
        future=True,
        **kwargs,
    )


engine = build_engine(settings.SQLALCHEMY_DATABASE_URI)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
