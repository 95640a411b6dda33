import logging
from kpi_portal.core.config import settings
from kpi_portal.database import SessionLocal
from kpi_portal.services.review_service import ReviewService

logger = logging.getLogger(__name__)

def init_system_data():
    """
    Checks if the system needs initialization.
    If no rating options exist, seeds the default 1.00 / 1.25 / 1.50 scale.
    """
    if not settings.seed_rating_options:
        logger.info("Rating option seeding disabled.")
        return
    db = SessionLocal()
    try:
        created = ReviewService(db).seed_rating_options()
        if created:
            logger.info(f"✓ Seeded {created} default rating options.")
        else:
            logger.info("System initialization check: rating options already configured.")
    except Exception as e:
        db.rollback()
        logger.error(f"Error during system initialization check: {str(e)}", exc_info=True)
    finally:
        db.close()
