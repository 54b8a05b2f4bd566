#!/usr/bin/env python3
"""Serve the API with uvicorn; HOST/PORT come from settings (PORT is set by most hosts)."""
import uvicorn

from wedfund.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "wedfund.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level="info" if settings.is_production else "debug",
        proxy_headers=True,
    )
