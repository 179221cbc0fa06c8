from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def resolve_database_url(database_url: str, database_name: str | None = None) -> str:
    """Apply ``database_name`` when the connection URI does not name a database."""
    url = make_url(database_url)
    if url.database or not database_name:
        return database_url
    return url.set(database=database_name).render_as_string(hide_password=False)


def build_engine(database_url: str, *, echo: bool = False) -> Engine:
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
    )


def ping(engine: Engine) -> None:
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
