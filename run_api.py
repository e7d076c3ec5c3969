#!/usr/bin/env python3
"""
Start the Book Catalog API under uvicorn.

Host, port and debug come from APIConfig; the log level is the catalog's
LOG_LEVEL so the server and the engine log at the same threshold.
"""

import uvicorn

from api.config import config as api_config
from utilities.config import config


def main():
    """Run the API server."""
    print(f"📚 Book Catalog API on http://{api_config.host}:{api_config.port}")
    print(f"   database={config.mongodb_database} debug={api_config.debug}")

    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
