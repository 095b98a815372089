import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI

from revision.api.routes import router
from revision.config import PipelineSettings

load_dotenv()


def configure_logging(level: str | None = None) -> None:
    """Set up root logging; the level defaults to the LOG_LEVEL setting."""
    if level is None:
        level = PipelineSettings.from_env().log_level
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


configure_logging()

app = FastAPI(
    title="Revision AI Edit API",
    description="Analyze user-marked regions of a photo and return an AI-edited image",
    version="0.1.0",
)

app.include_router(router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8002"))

    uvicorn.run("revision.main:app", host=host, port=port, reload=True)
