import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from market.api.v1.router import router as v1_router
from market.core.errors import MarketError
from market.core.telemetry import setup_telemetry
from market.schemas.common import ErrorResponse

log = logging.getLogger(__name__)

app = FastAPI(title="Marketplace API", version="0.1.0")


@app.exception_handler(MarketError)
async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    log.info("request rejected: %s %s code=%s reason=%s", request.method, request.url.path, exc.code, exc.reason)
    return JSONResponse(status_code=exc.status_code, content=ErrorResponse(**exc.to_dict()).model_dump())


setup_telemetry(app)
app.include_router(v1_router)
