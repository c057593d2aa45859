"""
Run the audio report FastAPI server.
"""
import logging
import os

import uvicorn


def main() -> None:
    host = os.getenv("UVICORN_HOST", "0.0.0.0")
    port = int(os.getenv("UVICORN_PORT", "8000"))
    reload_enabled = os.getenv("UVICORN_RELOAD", "false").lower() == "true"
    workers = int(os.getenv("UVICORN_WORKERS", "1"))

    if workers > 1:
        # Jobs live in process memory; a second worker would not see them.
        workers = 1

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run(
        "audioreport.api:app",
        host=host,
        port=port,
        reload=reload_enabled,
        workers=workers,
    )


if __name__ == "__main__":
    main()
