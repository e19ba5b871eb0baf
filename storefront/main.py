import logging

from .app import create_app
from .common.config import settings

app = create_app()

if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    logging.getLogger(__name__).info("Starting storefront instance=%s", settings.INSTANCE_ID)
    app.run(host=settings.APP_HOST, port=settings.APP_PORT, use_reloader=False)
