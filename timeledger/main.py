import logging
from contextlib import asynccontextmanager

import uvicorn

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
from timeledger.routers import invoices, public, time_tracking
from timeledger.config import settings
from timeledger.db import db, ensure_indexes

PROD_MODE = settings.PRODUCTION_MODE

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes(db)
    yield


app = FastAPI(title=settings.PROJECT_TITLE, lifespan=lifespan)

app.include_router(time_tracking.router, prefix="/time-tracking", tags=["time_tracking"])
app.include_router(invoices.router, prefix="/invoices", tags=["invoices"])
app.include_router(public.router, prefix="/public", tags=["public"])

# Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def index():
    return {"message": "Hello Timeledger"}


def run():
    # reload only outside production
    uvicorn.run("timeledger.main:app", host="0.0.0.0", port=11000, reload=not PROD_MODE)


if __name__ == "__main__":
    run()
