"""
ASGI entry point for uvicorn
This module exposes the FastAPI app for use with uvicorn command line
"""

import logging

from config_loader import load_config
from services.index_server import IndexServer

# Load configuration
config = load_config()

# Initialize components synchronously for uvicorn; IndexServer also configures logging
server = IndexServer(config=config)

logger = logging.getLogger(__name__)

# Expose the FastAPI app for uvicorn
app = server.api.app

# Lifespan events for proper initialization and cleanup
@app.on_event("startup")
async def startup_event():
    """Open the database pool, cache connection and probe session"""
    logger.info("Starting up application...")
    await server.initialize()
    logger.info("Application components initialized")

@app.on_event("shutdown")
async def shutdown_event():
    """Clean up resources on shutdown"""
    logger.info("Shutting down application...")
    await server.close()
    logger.info("Application shut down complete")

logger.info("ASGI app ready for uvicorn")
