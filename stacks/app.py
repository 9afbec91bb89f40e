#!/usr/bin/env python3

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from stacks.routes import api
from stacks.configs import OPTIONS, CORS_ORIGINS
from stacks.core import db
from stacks.core.sweeper import OverdueSweeper
from stacks.core.exceptions import StacksAPIError, CorruptionError
from stacks import __version__ as VERSION


@asynccontextmanager
async def lifespan(app: FastAPI):
    db.init()
    app.state.sweeper.start()
    yield
    await app.state.sweeper.stop()


app = FastAPI(
    title="Stacks API",
    description="Stacks: circulation and inventory for lending libraries",
    version=VERSION,
    lifespan=lifespan,
)
app.state.sweeper = OverdueSweeper()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(StacksAPIError)
async def stacks_error_handler(request: Request, exc: StacksAPIError):
    return api.error_response(exc)

@app.exception_handler(CorruptionError)
async def corruption_handler(request: Request, exc: CorruptionError):
    return api.corruption_response(exc)

app.include_router(api.router, prefix="/v1/api")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("stacks.app:app", **OPTIONS)
