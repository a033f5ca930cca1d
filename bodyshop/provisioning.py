"""
Schema provisioning and seed data.

Runs at startup (when ``AUTO_PROVISION`` is set) or by hand:

    python -m bodyshop.provisioning
"""
import logging

from sqlalchemy.orm import Session

from bodyshop.auth_utils import create_admin_user_if_not_exists
from bodyshop.database import Base, SessionLocal, engine
from bodyshop.database_models import SmsTemplate
from bodyshop.services.sms import DEFAULT_TEMPLATES

logger = logging.getLogger(__name__)


def seed_sms_templates(db: Session) -> int:
    """Adds any default template that is missing. Existing ones are left alone."""
    existing = {name for (name,) in db.query(SmsTemplate.template_name).all()}
    missing = [name for name in DEFAULT_TEMPLATES if name not in existing]
    for name in missing:
        db.add(SmsTemplate(template_name=name, message_template=DEFAULT_TEMPLATES[name]))
    db.commit()
    if missing:
        logger.info("Seeded %d SMS template(s)", len(missing))
    return len(missing)


def provision(bind=engine, session_factory=SessionLocal) -> None:
    # 1. Tables
    Base.metadata.create_all(bind=bind)

    # 2. Seed data
    db = session_factory()
    try:
        create_admin_user_if_not_exists(db)
        seed_sms_templates(db)
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    provision()
