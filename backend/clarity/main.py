import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from clarity.ai.provider_factory import get_chat_provider
from clarity.routes.clarity_routes import router as clarity_router


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

logging.basicConfig(
    level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        yield
    finally:
        # Avoid creating a provider just to close it.
        if get_chat_provider.cache_info().currsize > 0:
            provider = get_chat_provider()
            close = getattr(provider, "aclose", None)
            if callable(close):
                await close()


app = FastAPI(title="Clarity Ingredient Safety API", lifespan=lifespan)


# Preflight must answer 200 with an empty body, which CORSMiddleware does not do.
@app.middleware("http")
async def add_cors_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


app.include_router(clarity_router)


@app.get("/")
def read_root():
    return {"message": "Clarity backend is running"}
