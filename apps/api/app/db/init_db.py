from sqlalchemy import text

from app.db.base import Base
from app.db.session import engine
from app.models import AuditLog, Service, Stack  # noqa: F401


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def database_available() -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:  # noqa: BLE001
        return False
