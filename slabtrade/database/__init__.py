from slabtrade.database.base import Base
from slabtrade.database.engine import build_engine, engine, init_db
from slabtrade.database.session import SessionLocal, get_db, transaction

__all__ = ["Base", "SessionLocal", "build_engine", "engine", "get_db", "init_db", "transaction"]
