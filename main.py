import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from library_desk import routes
from library_desk.bootstrap import initialise_backend, run_with_deadline
from library_desk.config import LOG_LEVEL
from library_desk.database import Base, engine
from library_desk.errors import LibraryError

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("library_desk")

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await run_in_threadpool(run_with_deadline, initialise_backend)
    yield


app = FastAPI(title="Library Desk", lifespan=lifespan)
app.include_router(router=routes.router)


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Something went wrong. Please try again.", "code": "unexpected"},
    )
