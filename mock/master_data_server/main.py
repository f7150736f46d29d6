from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pathlib import Path
import json
import os

app = FastAPI(title="Mock Master Data Server", version="1.0.0")
# Support both local development and Docker
DATA_DIR = Path("/master_data_stub") if os.path.exists("/master_data_stub") else Path(__file__).resolve().parents[1] / "master_data_stub"


def _load_account(account_ref: str) -> dict:
    file = DATA_DIR / f"account_{account_ref}.json"
    if not file.exists():
        raise HTTPException(status_code=404, detail="account not found")
    return json.loads(file.read_text())


@app.get("/health")
def health(): return {"status": "ok"}

@app.get("/accounts/{account_ref}/plans")
def get_plans(account_ref: str):
    account = _load_account(account_ref)
    return JSONResponse(content={"plans": account.get("plans", [])})

@app.get("/accounts/{account_ref}/opening-balance")
def get_opening_balance(account_ref: str):
    account = _load_account(account_ref)
    return JSONResponse(content={"opening_balance_minor": account.get("opening_balance_minor", 0)})
