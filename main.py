import logging
import os

import uvicorn

from bsi_telemetry.api.app import create_app
from bsi_telemetry.core.settings import Settings

settings = Settings()

logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = create_app(settings)


if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "5000"))
    logger.info("Serving on %s:%s", host, port)
    uvicorn.run("main:app", host=host, port=port, reload=settings.is_dev)
