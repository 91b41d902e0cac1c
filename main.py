from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import Config
from database import connect_to_mongo, close_mongo_connection
from logger import setup_logging
from routers import surveys_router, deliveries_router

setup_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await connect_to_mongo()
    yield
    # Shutdown
    await close_mongo_connection()

app = FastAPI(
    title=Config.API_TITLE,
    description="Survey statistics and delivery scheduling backed by MongoDB",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(surveys_router)
app.include_router(deliveries_router)

@app.get("/")
async def root():
    return {
        "message": Config.API_TITLE,
        "version": "1.0.0",
        "docs": "/docs",
        "description": "Survey statistics and delivery scheduling API"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy"}
