"""
FastAPI Application - Token Price API

Provides REST and WebSocket access to multi-source token prices and leveraged
position PnL.

Price Sources (strict fallback order):
    - Internal price oracle (confidence: high)
    - DexScreener (confidence: medium)
    - CoinGecko (confidence: low, only with an API key)

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Optional
from contextlib import asynccontextmanager

from core.config import settings, validate_configuration
from core.errors import PriceServiceError, ValidationError
from core.logging import logger
from core.pnl import format_pnl_result, position_inputs_usable
from core.schemas import (
    BatchPriceRequest,
    PortfolioPosition,
    PortfolioValuation,
    PositionPnLInput,
    SourceStatus,
    TokenAnalysis,
    TokenPriceData,
)
from core.utils.chains import SUPPORTED_CHAINS, ChainInfo, get_production_chains
from services.price_stream import PriceStreamManager
from services.token_price_service import TokenPriceService, get_token_price_service


# ============================================
# Dependencies
# ============================================

_stream_manager: Optional[PriceStreamManager] = None


def get_service() -> TokenPriceService:
    return get_token_price_service()


def get_stream_manager() -> PriceStreamManager:
    global _stream_manager
    if _stream_manager is None:
        _stream_manager = PriceStreamManager(get_token_price_service())
    return _stream_manager


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    # Startup
    logger.info("=== Application Starting ===")
    try:
        validate_configuration()
        await get_token_price_service().initialize()
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    # Shutdown
    logger.info("=== Shutting Down ===")
    try:
        await get_stream_manager().shutdown()
        await get_token_price_service().shutdown()
        logger.info("=== Shutdown Complete ===")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Token Price API",
    description=(
        "Multi-source token prices with leveraged PnL.\n\n"
        "**Sources:** internal oracle, DexScreener, CoinGecko (in fallback order)\n\n"
        "## REST Endpoints\n"
        "- `GET /price/{symbol}` - Price by symbol, market symbol or address\n"
        "- `GET /price/address/{token_address}` - Price by contract address\n"
        "- `POST /prices` - Batch prices\n"
        "- `GET /analysis/{token_address}` - Venue quotes, dispersion and arbitrage spreads\n"
        "- `POST /pnl` - Unrealized PnL of a leveraged position\n"
        "- `POST /portfolio` - PnL summed over positions\n"
        "- `GET /sources` - Price sources in priority order\n"
        "- `GET /chains` - Supported chains\n"
        "- `GET /health` - Per-source health\n\n"
        "## WebSocket Streams\n"
        "- `ws://{host}/ws/prices?symbols=CAKE,BNB&interval=5` - Polling price updates\n\n"
        "All WebSocket messages are JSON objects using our Pydantic schemas."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": exc.message, "kind": exc.kind})


@app.exception_handler(PriceServiceError)
async def price_service_error_handler(request, exc: PriceServiceError):
    logger.error(f"Unhandled {exc.kind} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=502, content={"detail": exc.message, "kind": exc.kind})


# ============================================
# System Endpoints
# ============================================

@app.get("/", tags=["System"])
async def root(service: TokenPriceService = Depends(get_service)):
    """API information and price sources."""
    return {
        "name": "Token Price API",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs",
        "sources": service.manager.list_sources()
    }


@app.get("/health", tags=["System"])
async def health_check(service: TokenPriceService = Depends(get_service)):
    """Health check - tests connectivity to every configured source."""
    return await service.health_check()


@app.get("/sources", response_model=List[SourceStatus], tags=["System"])
async def list_sources(service: TokenPriceService = Depends(get_service)):
    """Price sources in fallback order."""
    manager = service.manager
    return [
        SourceStatus(
            name=name,
            priority=index + 1,
            confidence=manager.get_source(name).confidence,
            configured=manager.get_source(name).is_configured(),
        )
        for index, name in enumerate(manager.list_sources())
    ]


@app.get("/chains", response_model=List[ChainInfo], tags=["System"])
async def list_chains(include_testnets: bool = Query(default=False, description="Include testnets")):
    """Supported chains (production only unless include_testnets is set)."""
    if include_testnets:
        return list(SUPPORTED_CHAINS.values())
    return get_production_chains()


@app.post("/cache/clear", tags=["System"])
async def clear_cache(service: TokenPriceService = Depends(get_service)):
    service.clear_cache()
    return {"message": "Cache cleared"}


# ============================================
# Price Endpoints
# ============================================

@app.get("/price/address/{token_address}", response_model=TokenPriceData, tags=["Prices"])
async def get_price_by_address(
    token_address: str,
    symbol: Optional[str] = Query(default=None, description="Display symbol (optional)"),
    pair_address: Optional[str] = Query(default=None, description="Pair to price against"),
    chain_id: Optional[int] = Query(default=None, description="Chain ID (default: configured chain)"),
    service: TokenPriceService = Depends(get_service)
):
    """Price of a token by contract address."""
    price = await service.get_price_by_address(token_address, symbol, pair_address, chain_id)
    if price is None:
        raise HTTPException(status_code=404, detail=f"Price unavailable for {token_address}")
    return price


@app.get("/price/{symbol}", response_model=TokenPriceData, tags=["Prices"])
async def get_price(
    symbol: str,
    pair_address: Optional[str] = Query(default=None, description="Pair to price against"),
    chain_id: Optional[int] = Query(default=None, description="Chain ID (default: configured chain)"),
    service: TokenPriceService = Depends(get_service)
):
    """
    Price of a token.

    `symbol` may be a plain symbol (CAKE), a market symbol (CAKE+0x..., CAKE_PERP_0x...)
    or a bare contract address.
    """
    price = await service.get_price(symbol, pair_address, chain_id)
    if price is None:
        raise HTTPException(status_code=404, detail=f"Price unavailable for {symbol}")
    return price


@app.post("/prices", tags=["Prices"])
async def get_prices(body: BatchPriceRequest, service: TokenPriceService = Depends(get_service)):
    """Batch prices. Identifiers without a price are listed under `missing`."""
    prices = await service.get_multiple_prices(body.identifiers, body.chain_id)
    return {
        "prices": {identifier: price.model_dump(mode="json") for identifier, price in prices.items()},
        "missing": [identifier for identifier in dict.fromkeys(body.identifiers) if identifier not in prices]
    }


@app.get("/analysis/{token_address}", response_model=TokenAnalysis, tags=["Prices"])
async def analyze_token(
    token_address: str,
    pair_address: Optional[str] = Query(default=None),
    chain_id: Optional[int] = Query(default=None),
    service: TokenPriceService = Depends(get_service)
):
    """Venue quotes from every source with best price, statistics and arbitrage spreads."""
    return await service.analyze_token(token_address, pair_address, chain_id)


# ============================================
# PnL Endpoints
# ============================================

@app.post("/pnl", tags=["PnL"])
async def position_pnl(body: PositionPnLInput, service: TokenPriceService = Depends(get_service)):
    """Unrealized PnL of a leveraged position at the current price."""
    if not position_inputs_usable(body.entry_price, body.margin, body.leverage):
        raise HTTPException(status_code=422, detail="Entry price, margin and leverage must be non-zero numbers")

    result = await service.calculate_position_pnl(
        body.price_key,
        body.entry_price,
        body.margin,
        body.leverage,
        body.is_long,
        body.liquidation_price,
    )
    if result is None:
        raise HTTPException(status_code=404, detail=f"Price unavailable for {body.price_key}")

    return {
        "result": result.model_dump(mode="json"),
        "display": format_pnl_result(result).model_dump(mode="json"),
        "source": result.price_source,
        "confidence": result.price_confidence
    }


@app.post("/portfolio", response_model=PortfolioValuation, tags=["PnL"])
async def portfolio_value(positions: List[PortfolioPosition], service: TokenPriceService = Depends(get_service)):
    return await service.calculate_portfolio_value(positions)


# ============================================
# WebSocket Endpoints
# ============================================

@app.websocket("/ws/prices")
async def websocket_prices(
    websocket: WebSocket,
    symbols: str = Query(..., description="Comma-separated identifiers (e.g., CAKE,BNB)"),
    interval: Optional[float] = Query(default=None, description="Seconds between updates"),
    chain_id: Optional[int] = Query(default=None),
    streams: PriceStreamManager = Depends(get_stream_manager)
):
    """
    Polling price stream.

    Example:
        ws://localhost:8000/ws/prices?symbols=CAKE,BNB&interval=5

    Each message is a PriceStreamUpdate; poll failures arrive as
    {"type": "error", "message": "..."}.
    """
    await websocket.accept()
    identifiers = [s.strip() for s in symbols.split(",") if s.strip()]
    logger.info(f"WS connected: prices {identifiers}")

    async def send_update(update):
        await websocket.send_json(update.model_dump(mode="json"))

    async def send_error(error: Exception):
        await websocket.send_json({"type": "error", "message": str(error)})

    try:
        handle = streams.start_stream(
            identifiers,
            interval=interval,
            on_update=send_update,
            on_error=send_error,
            chain_id=chain_id,
        )
    except ValueError as e:
        await websocket.close(code=1008, reason=str(e))
        return

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"WS disconnected: prices {identifiers}")
    finally:
        streams.stop_stream(handle)
        logger.info(f"WS ended: prices {identifiers}")
