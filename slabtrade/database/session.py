from contextlib import contextmanager

from sqlalchemy.orm import Session, sessionmaker

from slabtrade.database.engine import engine

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """Commit on success, roll back and re-raise on any failure."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
