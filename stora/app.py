#!/usr/bin/env python3

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from stora.routes import api
from stora.configs import CORS_ORIGINS, OPTIONS
from stora.core.exceptions import StoraError
from stora import __version__ as VERSION


app = FastAPI(
    title="STORA API",
    description="STORA: inventory and loan ledger for student organizations",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(StoraError, api.stora_error_handler)

app.include_router(api.router, prefix="/v1/api")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("stora.app:app", **OPTIONS)
