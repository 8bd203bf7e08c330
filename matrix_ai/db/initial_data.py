"""
Initial data: an admin account and the monitored sources.

Run with `python -m matrix_ai.db.initial_data`. Idempotent: existing rows
(matched by username / source name) are left untouched.
"""
import os
import logging
from sqlalchemy.orm import Session

from matrix_ai.auth.security import hash_password
from matrix_ai.core.logging_config import configure_logging
from matrix_ai.db.models.common import Source, SourceType, User, UserRole
from matrix_ai.db.session import SessionLocal, init_db

logger = logging.getLogger(__name__)

INITIAL_SOURCES = [
    {"name": "VKontakte monitoring", "type": SourceType.VKONTAKTE, "url": "https://vk.com"},
    {"name": "Telegram channels", "type": SourceType.TELEGRAM, "url": "https://t.me"},
    {"name": "Twitter stream", "type": SourceType.TWITTER, "url": "https://twitter.com"},
    {"name": "Manual submissions", "type": SourceType.OTHER, "url": None},
]


def seed(db: Session, admin_username: str, admin_email: str, admin_password: str) -> User:
    admin = db.query(User).filter(User.username == admin_username).first()
    if admin is None:
        admin = User(
            username=admin_username,
            email=admin_email,
            password_hash=hash_password(admin_password),
            role=UserRole.ADMIN,
        )
        db.add(admin)
        db.flush()
        logger.info(f"Created admin user {admin_username}")

    for fields in INITIAL_SOURCES:
        if db.query(Source).filter(Source.name == fields["name"]).first() is None:
            db.add(Source(created_by=admin.id, **fields))
            logger.info(f"Created source {fields['name']}")

    db.commit()
    db.refresh(admin)
    return admin


def main():
    configure_logging()
    password = os.environ.get("MATRIX_AI_ADMIN_PASSWORD")
    if not password:
        raise SystemExit("MATRIX_AI_ADMIN_PASSWORD must be set")

    init_db()
    db = SessionLocal()
    try:
        seed(
            db,
            admin_username=os.environ.get("MATRIX_AI_ADMIN_USERNAME", "admin"),
            admin_email=os.environ.get("MATRIX_AI_ADMIN_EMAIL", "admin@example.com"),
            admin_password=password,
        )
    finally:
        db.close()


if __name__ == "__main__":
    main()
