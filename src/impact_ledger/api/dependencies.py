from fastapi import HTTPException, Request

from impact_ledger.manager import LedgerManager


def get_manager(request: Request) -> LedgerManager:
    manager = getattr(request.app.state, "manager", None)
    if not manager:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return manager
