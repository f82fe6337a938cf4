from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from pixel_sender.config import DATABASE_URL, PIXEL_SENDER_DEFAULTS

# One engine per resolved URL; the {database} placeholder selects the namespace.
_engines: dict[str, Engine] = {}


def resolve_database_url(database: str | None = None) -> str:
	return DATABASE_URL.format(database=database or PIXEL_SENDER_DEFAULTS["database"])


def get_engine(database: str | None = None) -> Engine:
	url = resolve_database_url(database)
	engine = _engines.get(url)
	if engine is None:
		engine = create_engine(url, pool_pre_ping=True)
		_engines[url] = engine
	return engine


def session_factory_for(database: str | None = None) -> sessionmaker:
	return sessionmaker(autocommit=False, autoflush=False, bind=get_engine(database))


engine = get_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

class Base(DeclarativeBase):
	pass
