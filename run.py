"""
Local entry point. Routers are assembled in bizhub.app.create_app().
"""

import uvicorn

from bizhub.app import app
from bizhub.config import settings

if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0" if settings.environment == "production" else "127.0.0.1",
        port=8000,
        log_level="debug" if settings.debug else "info",
    )
