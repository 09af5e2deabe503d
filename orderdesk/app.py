import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from orderdesk.infrastructure import WarehouseError
from orderdesk.routes import dispatch, orders, reference, stock, verify
from orderdesk.settings import WarehouseConfigError, configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Order Desk Sales Orders API", version="0.0.1")

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(WarehouseConfigError)
    async def config_error(request: Request, exc: WarehouseConfigError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(WarehouseError)
    async def warehouse_error(request: Request, exc: WarehouseError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": f"Warehouse query failed: {exc}"})

    app.include_router(orders.router, prefix="/api")
    app.include_router(dispatch.router, prefix="/api")
    app.include_router(verify.router, prefix="/api")
    app.include_router(stock.router, prefix="/api")
    app.include_router(reference.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Order Desk Sales Orders API",
                "docs": "/docs",
                "health": "/api/dispatch/keys",
            }
        )

    return app


app = create_app()
