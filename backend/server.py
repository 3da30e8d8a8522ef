"""
SalesOps Dashboard - API Backend

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

import os
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("salesops")

# Créer l'app
app = FastAPI(
    title="SalesOps Dashboard",
    description="API du dashboard sales ops (calls, closers, setters, intégrations)",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== IMPORT DES ROUTES ====================

from routes import api  # noqa: E402

# Catch-all /api/<route>
app.include_router(api.router)


# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    from config import env_snapshot
    return {
        "name": "SalesOps Dashboard API",
        "version": "1.0.0",
        "status": "running",
        "integrations": env_snapshot(),
        "docs": "/docs"
    }


# ==================== STARTUP ====================

@app.on_event("startup")
async def startup():
    from config import init_db
    await init_db()
    logger.info("🚀 SalesOps Dashboard API démarrée")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
