from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from farmsight.core.config import settings

DATABASE_URL = settings.DATABASE_URL


def build_engine(url: str, echo: bool = False):
    # In-memory SQLite must share one connection across threads
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, echo=echo, pool_pre_ping=True)


engine = build_engine(DATABASE_URL, echo=settings.SQL_ECHO)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()
