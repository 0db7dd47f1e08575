
"""Factory de sessão do SQLAlchemy 2."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

def create_session_factory(database_url: str):
    """Cria SessionFactory síncrona para SQLAlchemy 2.

    SQLite em memória usa um único connection (StaticPool) para que todas as
    sessões enxerguem o mesmo banco.

    :param database_url: URL completa do banco (sqlite, libsql ou psycopg3).
    :return: sessionmaker configurado.
    """
    kwargs = {"pool_pre_ping": True, "future": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

def create_schema(session_factory) -> None:
    """Cria as tabelas que ainda não existem (dev/testes; produção usa alembic)."""
    from ..repo.models import Base
    Base.metadata.create_all(bind=session_factory.kw["bind"])
