"""API server entry point for python -m gifpipe.api"""
import uvicorn

from gifpipe.config import load_settings

if __name__ == "__main__":
    settings = load_settings()
    uvicorn.run(
        "gifpipe.api.app:app",
        host=settings.site.host,
        port=settings.site.port,
        reload=False,
    )
