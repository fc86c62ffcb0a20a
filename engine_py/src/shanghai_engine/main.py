"""FastAPI main application for the Shanghai Rummy backend"""

import logging
import os

from .ws.server import create_app

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "info").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def _round_advance_delay():
    value = os.getenv("ROUND_ADVANCE_DELAY", "3")
    # An empty value or "off" leaves round advancing to the next_round command
    if value.strip().lower() in ("", "off", "none"):
        return None
    return float(value)


def _cors_origins():
    return [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]


app = create_app(round_advance_delay=_round_advance_delay(), cors_origins=_cors_origins())


@app.get("/")
async def root():
    return {"message": "Shanghai Rummy Game API", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
