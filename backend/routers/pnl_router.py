from typing import Callable, Optional

from fastapi import APIRouter, HTTPException

from chains import CHAIN_GROUPS, CHAINS
from errors import ConfigurationError, NoDataError, PnlError


def create_pnl_router(
    *,
    analyze_wallet_fn: Callable,
    analyze_chains_fn: Callable,
) -> APIRouter:
    router = APIRouter()

    @router.get("/api/health")
    def health():
        return {"status": "ok", "chains": sorted(CHAINS) + sorted(CHAIN_GROUPS)}

    @router.get("/api/pnl/{wallet}")
    def get_wallet_pnl(
        wallet: str,
        chain: str = "solana",
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ):
        """Realized trading PnL summary for a wallet."""
        wallet = wallet.strip()
        if not wallet:
            raise HTTPException(status_code=400, detail="Wallet address cannot be empty")
        chain = chain.strip().lower()

        try:
            if chain in CHAIN_GROUPS:
                summary = analyze_chains_fn(wallet, chain, date_from=date_from, date_to=date_to)
            else:
                summary = analyze_wallet_fn(wallet, chain, date_from=date_from, date_to=date_to)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ConfigurationError as e:
            print(f"[API] configuration error: {e}")
            raise HTTPException(status_code=500, detail="Activity providers are not configured on the server")
        except NoDataError as e:
            raise HTTPException(status_code=502, detail=str(e))
        except PnlError as e:
            raise HTTPException(status_code=502, detail=str(e))

        return summary.to_dict()

    return router
