"""
Proposal Intelligence Engine - API entry point

FastAPI application exposing the deterministic proposal engine (technology
selection, costing, smart import, validation and red flags) to the
dashboard. The engine is stateless; every request is computed from the
reference data loaded at startup.
"""
import logging
from fastapi import FastAPI

from proposal_engine import config
from proposal_engine.api.routes import api_router

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("proposal-engine")

app = FastAPI(
    title=config.APP_NAME,
    description="Deterministic technology selection, costing, smart import and validation for water-treatment proposals",
    version="1.0.0",
)

app.include_router(api_router)


@app.get("/")
async def root():
    return {
        "status": "running",
        "message": f"{config.APP_NAME} API is running.",
        "docs": "/docs",
    }


@app.on_event("startup")
async def startup_event():
    logger.info("%s starting up...", config.APP_NAME)
    logger.info("Log level: %s", config.LOG_LEVEL)
    logger.info("Reference data file: %s", config.REFERENCE_FILE or "(built-in defaults)")

    reference = config.get_reference_data()
    logger.info(
        "Reference data: %d sectors, %d field patterns",
        len(reference.technology_catalog), len(reference.field_patterns),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
