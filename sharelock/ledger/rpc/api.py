from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from typing import Optional
import json
from ...protocol.types.tx import Operation
from ...protocol.types.common import LedgerError, NotFound, UnknownWindow
from ...protocol.config.params import MAX_PAGE_SIZE
from ..core.ledger import Ledger
from ..core.state import LOCK_CUSTODY, DISTRIBUTOR_CUSTODY
from ..observability.metrics import metrics_registry, update_metrics
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="Sharelock Ledger RPC")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
ledger: Optional[Ledger] = None


def _require_ledger(initialized: bool = True) -> Ledger:
    if not ledger:
        raise HTTPException(status_code=503, detail="Ledger not available")
    if initialized and not ledger.state.initialized:
        raise HTTPException(status_code=503, detail="Ledger not initialized")
    return ledger


def _http_error(e: LedgerError) -> HTTPException:
    status = 404 if isinstance(e, (NotFound, UnknownWindow)) else 400
    return HTTPException(status_code=status, detail=e.to_dict())


@app.get("/status")
async def get_status():
    node = _require_ledger(initialized=False)
    state = node.state
    status = {
        "network": node.config.network_id,
        "initialized": state.initialized,
        "admin": state.admin,
        "operations": node.db.count_operations(),
        "state_root": node.state_root(),
        "share_supply": state.share_token.total_supply,
        "lock_custody": LOCK_CUSTODY,
        "distributor_custody": DISTRIBUTOR_CUSTODY,
    }
    if state.initialized:
        status.update({
            "config": state.config.to_dict(),
            "locks_length": state.locks.get_locks_length(),
            "total_locked": state.locks.total_locked,
            "windows_length": state.windows.get_windows_length(),
            "distributor_balance": state.claims.custody_balance,
        })
    return status


@app.get("/nonce/{address}")
async def get_nonce(address: str):
    node = _require_ledger(initialized=False)
    return {"address": address, "nonce": node.get_nonce(address)}


@app.get("/balance/{address}")
async def get_balance(address: str):
    node = _require_ledger(initialized=False)
    state = node.state
    return {
        "address": address,
        "deposit": state.deposit_token.balance_of(address),
        "share": state.share_token.balance_of(address),
        "reward": state.reward_token.balance_of(address),
        "nonce": node.get_nonce(address),
    }


@app.get("/locks")
async def get_locks(offset: int = Query(0, ge=0), limit: int = Query(100, gt=0, le=MAX_PAGE_SIZE)):
    node = _require_ledger()
    locks = node.state.locks.list_locks(offset, limit)
    return {
        "locks_length": node.state.locks.get_locks_length(),
        "locks": [{"lock_id": i, **lock.model_dump()} for i, lock in locks],
    }


@app.get("/lock/{lock_id}")
async def get_lock(lock_id: int):
    node = _require_ledger()
    try:
        lock = node.state.locks.lock(lock_id)
    except LedgerError as e:
        raise _http_error(e)
    return {"lock_id": lock_id, "unlocks_at": lock.unlocks_at, **lock.model_dump()}


@app.get("/staking/{address}")
async def get_staking_data(address: str,
                           offset: int = Query(0, ge=0),
                           limit: int = Query(100, gt=0, le=MAX_PAGE_SIZE)):
    node = _require_ledger()
    data = node.state.locks.get_staking_data(address, offset, limit)
    response = data.model_dump()
    response["locks"] = [{"lock_id": i, **lock.model_dump()} for i, lock in data.locks]
    return response


@app.get("/windows")
async def get_windows(offset: int = Query(0, ge=0), limit: int = Query(100, gt=0, le=MAX_PAGE_SIZE)):
    node = _require_ledger()
    windows = node.state.windows.list_windows(offset, limit)
    return {
        "windows_length": node.state.windows.get_windows_length(),
        "windows": [w.model_dump() for w in windows],
    }


@app.get("/window/{index}")
async def get_window(index: int):
    node = _require_ledger()
    try:
        window = node.state.windows.window(index)
        remaining = node.state.claims.remaining_amount(index)
    except LedgerError as e:
        raise _http_error(e)
    return {**window.model_dump(), "remaining": remaining}


@app.get("/claimed/{window_index}/{account_index}")
async def get_claimed(window_index: int, account_index: int):
    node = _require_ledger()
    return {
        "window_index": window_index,
        "account_index": account_index,
        "claimed": node.state.claims.is_claimed(window_index, account_index),
    }


@app.post("/op/send")
async def send_op(op: Operation):
    node = _require_ledger(initialized=False)
    receipt = node.submit(op)
    return receipt.to_dict()


@app.get("/receipt/{op_hash}")
async def get_receipt(op_hash: str):
    node = _require_ledger(initialized=False)
    receipt = node.get_receipt(op_hash)
    if not receipt:
        raise HTTPException(status_code=404, detail="Operation not found")
    return receipt.to_dict()


@app.get("/operations")
async def get_operations(offset: int = Query(0, ge=0), limit: int = Query(100, gt=0, le=MAX_PAGE_SIZE)):
    """Applied operations in application order."""
    node = _require_ledger(initialized=False)
    return {
        "operations_length": node.db.count_operations(),
        "operations": [{"seq": seq, **json.loads(data)} for seq, data in node.db.get_operations(offset, limit)],
    }


@app.get("/operation/{op_hash}")
async def get_operation(op_hash: str):
    node = _require_ledger(initialized=False)
    data = node.db.get_operation(op_hash)
    if data is None:
        raise HTTPException(status_code=404, detail="Operation not found")
    return json.loads(data)


@app.get("/metrics")
async def get_metrics():
    """Prometheus metrics in text exposition format."""
    if ledger:
        update_metrics(ledger)
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)


def start_rpc_server(ledger_instance: Ledger, host: str = "0.0.0.0", port: int = 8000):
    global ledger
    ledger = ledger_instance
    import uvicorn
    uvicorn.run(app, host=host, port=port)
