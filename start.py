#!/usr/bin/env python3
"""
Start script - reads host/port from settings, PORT env var wins (PaaS deploys)
"""
import os

if __name__ == "__main__":
    # Import and run uvicorn programmatically
    import uvicorn

    from core.config import settings

    port = int(os.getenv("PORT", settings.app_port))

    uvicorn.run(
        "app.main:app",
        host=settings.app_host,
        port=port,
        log_level=settings.log_level.lower(),
        reload=settings.debug and settings.environment == "development"
    )
