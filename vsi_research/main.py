from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vsi_research.api.deps import shutdown_external_content
from vsi_research.api.routes import external
from vsi_research.config import settings
from vsi_research.services import logger as log_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    log_service.logger.info("VSI research service starting")
    yield
    await shutdown_external_content()


app = FastAPI(
    title="VSI Research",
    description="Source discovery, content analysis and external web research",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(external.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "vsi_research"}
