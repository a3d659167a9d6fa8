#!/usr/bin/env python
"""
Serve the WhatsApp webhook and workflow engine.
"""

import uvicorn

from flowbot.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "flowbot.main:app",
        host="0.0.0.0" if settings.ENVIRONMENT == "prod" else "127.0.0.1",
        port=8000,
        reload=settings.ENVIRONMENT == "dev",
        log_level=settings.LOG_LEVEL.lower(),
    )
