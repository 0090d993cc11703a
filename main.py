import logging
from fastapi import FastAPI
from fastapi.responses import RedirectResponse
from contextlib import asynccontextmanager

from app.config import settings
from app.database import engine
from app.middleware import add_cors_middleware
from app.models.all_models import Base
from app.routes import grades

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("Grade tables ready")
    yield

app = FastAPI(title="School Grading Service",
              description="Grade calculation and approval workflow for school results",
              version="1.0.0",
              lifespan=lifespan)
add_cors_middleware(app)


@app.get("/", include_in_schema=False)
async def root():
    """
    Root endpoint that redirects to the API documentation
    """
    return RedirectResponse(url="/docs")

app.include_router(grades.router)
