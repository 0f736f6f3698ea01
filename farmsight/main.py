from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from farmsight.core.config import settings
from farmsight.core.errors import FarmSightError, farmsight_error_handler
from farmsight.core.logging import get_logger
from farmsight.db.base import Base
from farmsight.db.database import engine

from farmsight.api.v1.health import router as health_router
from farmsight.api.v1.auth import router as auth_router
from farmsight.api.v1.farms import router as farms_router
from farmsight.api.v1.alerts import router as alerts_router
from farmsight.api.v1.satellite import router as satellite_router
from farmsight.api.v1.education import router as education_router

logger = get_logger("farmsight")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("FarmSight API started")
    yield


app = FastAPI(title="FarmSight Backend", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(FarmSightError, farmsight_error_handler)

app.include_router(health_router, prefix="/api/v1")
app.include_router(auth_router, prefix="/api/v1")
app.include_router(farms_router, prefix="/api/v1")
app.include_router(alerts_router, prefix="/api/v1")
app.include_router(satellite_router, prefix="/api/v1")
app.include_router(education_router, prefix="/api/v1")


@app.get("/")
def root():
    return {"status": "FarmSight backend running"}
