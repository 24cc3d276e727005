from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def build_database_url(raw_url: str) -> str:
    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
    return raw_url


def _is_memory_sqlite(url: str) -> bool:
    return url in {"sqlite://", "sqlite:///:memory:"}


class Database:
    def __init__(self, raw_url: str) -> None:
        if not raw_url:
            raise RuntimeError("DATABASE_URL is not configured")
        self.url = build_database_url(raw_url)
        engine_kwargs: dict = {"pool_pre_ping": True}
        if self.url.startswith("sqlite"):
            # Sync endpoints run in a threadpool, so SQLite connections cross threads.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if _is_memory_sqlite(self.url):
                engine_kwargs["poolclass"] = StaticPool
        self.engine = create_engine(self.url, **engine_kwargs)
        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, autocommit=False, expire_on_commit=False
        )

    def create_all(self) -> None:
        from phoneauth.models import record as _record  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session_scope(self):
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
