"""
FastAPI Backend for AppForge

API Structure:
- /api/health - Health check
- /api/builds/* - App generation and fix jobs
- /api/integrations/* - Registered providers and stored configs
- /api/history - Conversation history
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import HOST, PORT, CORS_ORIGINS
from routers import builds, integrations, history

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# Initialize FastAPI app
app = FastAPI(
    title="AppForge API",
    description="Agent-driven Apple platform app generator",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(builds.router)
app.include_router(integrations.router)
app.include_router(history.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "AppForge API",
        "version": "1.0.0",
        "endpoints": {
            "builds": "/api/builds",
            "integrations": "/api/integrations",
            "history": "/api/history",
        },
        "docs": "/docs"
    }


@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": "1.0.0",
    }


if __name__ == "__main__":
    import uvicorn

    print(f"""
    AppForge API
    API: http://{HOST}:{PORT}
    Docs: http://{HOST}:{PORT}/docs

    Press Ctrl+C to stop
    """)

    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        log_level="info"
    )
