#!/usr/bin/env python3
"""Start the Scribe transcription backend with uvicorn."""
import uvicorn

from scribe.config.settings import settings

if __name__ == "__main__":
    uvicorn.run(
        "scribe.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
