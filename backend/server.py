import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from analyze import analyze_chains, analyze_wallet
from config import Settings, load_settings
from http_client import HttpTransport
from routers.pnl_router import create_pnl_router


def create_app(settings: Settings | None = None, transport_factory=None) -> FastAPI:
    settings = settings or load_settings()
    make_transport = transport_factory or (lambda: HttpTransport(timeout=settings.request_timeout))

    app = FastAPI(title="Wallet PnL")

    # CORS: support both local development and production
    allowed_origins = [
        "http://localhost:5173",
        "http://localhost:5174",
    ]
    public_domain = os.getenv("PUBLIC_DOMAIN")
    if public_domain:
        allowed_origins.append(f"https://{public_domain}")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # A fresh transport per request keeps runs independent
    def _wallet(wallet, chain, **kwargs):
        return analyze_wallet(wallet, chain, settings=settings, transport=make_transport(), **kwargs)

    def _chains(wallet, chains, **kwargs):
        return analyze_chains(wallet, chains, settings=settings, transport=make_transport(), **kwargs)

    app.include_router(create_pnl_router(analyze_wallet_fn=_wallet, analyze_chains_fn=_chains))
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
