# Run the API: python -m grievance_desk

import logging

import uvicorn

from . import config

logger = logging.getLogger(__name__)

def main():
    logging.basicConfig(level=config.LOG_LEVEL)
    logger.info("API Base URL: http://localhost:%d%s", config.PORT, config.API_PREFIX)
    logger.info("Health Check: http://localhost:%d%s/health", config.PORT, config.API_PREFIX)
    uvicorn.run("grievance_desk.app:create_app", factory=True,
                host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())

if __name__ == "__main__":
    main()
