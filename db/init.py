# db/init.py
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from dotenv import load_dotenv
import logging
import os
from typing import Optional

from utils.errors import InfrastructureError

load_dotenv()

logger = logging.getLogger(__name__)

# ---- Database engine & Session ----
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set in environment (.env)")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ---- Base for ORM models ----
Base = declarative_base()


# ---- DB session dependency ----
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def register_models():
    """Import all model modules so their tables are registered on Base."""
    from models import (  # noqa: F401
        profile,
        booking,
        cancellation_log,
        user_ban,
        subscription,
    )


# ---- Initialization & optional seeding ----
def init_db(seed: bool = False):
    """
    Creates all tables and (optionally) seeds one client and one provider
    profile if their user ids do not already exist.
    """
    register_models()

    # Create tables
    Base.metadata.create_all(bind=engine)

    if seed:
        _seed_default_profiles()


def _seed_default_profiles():
    from sqlalchemy.orm import Session
    from models.profile import Profile, USER_TYPE_CLIENT, USER_TYPE_PROVIDER

    db: Session = SessionLocal()
    try:
        if not db.query(Profile).filter(Profile.user_id == "demo-provider").first():
            db.add(
                Profile(
                    user_id="demo-provider",
                    user_type=USER_TYPE_PROVIDER,
                    full_name="Demo Provider",
                    phone="1112223333",
                    city="Brooklyn",
                    is_verified=True,
                )
            )

        if not db.query(Profile).filter(Profile.user_id == "demo-client").first():
            db.add(
                Profile(
                    user_id="demo-client",
                    user_type=USER_TYPE_CLIENT,
                    full_name="Jane Doe",
                    phone="7778889999",
                    city="Brooklyn",
                )
            )

        db.commit()
    finally:
        db.close()


# ---- Transaction helpers ----
def safe_rollback(db):
    try:
        db.rollback()
    except SQLAlchemyError:
        logger.exception("Session rollback failed")


def commit_or_raise(db, error_message: str, log_message: Optional[str] = None):
    """Commit the session; on failure roll back and raise ``InfrastructureError``."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        safe_rollback(db)
        logger.exception(log_message or error_message)
        raise InfrastructureError(error_message) from exc
