"""Print which nodes and base stations a user can see.

Usage: python tools/check_user_nodes.py <username>
"""

import logging
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from bsi_telemetry.core.settings import Settings  # noqa: E402
from bsi_telemetry.db.models import User  # noqa: E402
from bsi_telemetry.db.session import create_engine_and_sessionmaker  # noqa: E402
from bsi_telemetry.services.access_control_service import AccessControlService, has_unrestricted_access  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)


def main(argv):
    if len(argv) != 2:
        logger.error("usage: %s <username>", argv[0])
        return 2

    settings = Settings()
    logger.info("DB: %s", settings.database_url)
    rt = create_engine_and_sessionmaker(settings.database_url)
    ac = AccessControlService()
    try:
        with rt.SessionLocal() as db:
            user = db.query(User).filter(User.username == argv[1]).one_or_none()
            if user is None:
                logger.error("User %s does not exist", argv[1])
                return 1

            logger.info(
                "User %s (id=%s role=%s active=%s access_all_nodes=%s)",
                user.username,
                user.id,
                user.role,
                user.is_active,
                user.access_all_nodes,
            )
            if has_unrestricted_access(user):
                logger.info("Unrestricted: sees every node")

            for a in ac.assignments_for(db, user):
                logger.info("  assignment %s: %s / %s", a.id, a.node_name, a.base_station_name or "*")

            for node in ac.visible_nodes(db, user):
                logger.info("Node %s: %s", node, ", ".join(ac.visible_base_stations(db, user, node)) or "-")
    finally:
        rt.engine.dispose()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
