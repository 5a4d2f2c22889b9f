from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Base, engine, SessionLocal, settings
from api import raffle, vrf, accounts
from core.bootstrap import ensure_raffle
from services.vrf_service import get_coordinator

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 建立資料庫表，沒有 Raffle 就依設定部署一個
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        deployed = ensure_raffle(db, settings, get_coordinator())
        logger.info(f"Raffle {deployed.address} ready (state={deployed.state.value})")
    finally:
        db.close()
    yield


app = FastAPI(
    title="Raffle API",
    description="Pooled-stake raffle with verifiable randomness",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(raffle.router)
app.include_router(vrf.router)
app.include_router(accounts.router)


@app.get("/")
def root():
    return {"message": "Raffle API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
