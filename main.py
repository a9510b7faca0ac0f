import os
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

import database
import reporting
import settlement
from errors import LedgerError

logger.remove()
logger.add(sys.stderr, level=os.getenv("LOG_LEVEL", "INFO"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes()
    else:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
    yield


app = FastAPI(title="Card Game Admin Ledger API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.code, "detail": exc.message},
    )


# Request payloads
class AddWinning(BaseModel):
    admin_id: Optional[str] = None
    game_id: Optional[str] = None
    winning_amount: Optional[float] = None


class RecordCard(BaseModel):
    card_id: int
    multiplier: float = Field(..., ge=0)


@app.get("/")
def read_root():
    return {"message": "Admin ledger backend is running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        db = database.db
        if db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = db.name if hasattr(db, 'name') else "✅ Connected"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response


# --- Admins ---
@app.get("/api/admins")
def list_admins():
    return {"success": True, "data": reporting.list_admins()}


@app.get("/api/admins/{admin_id}")
def get_admin_profile(admin_id: str):
    return {"success": True, "data": reporting.get_admin_profile(admin_id)}


@app.post("/api/admins/winnings", status_code=201)
def add_admin_winning(payload: AddWinning):
    entry = settlement.add_admin_winning(payload.admin_id, payload.game_id, payload.winning_amount)
    return {"success": True, "message": "Admin winning added successfully", "data": entry.model_dump()}


@app.post("/api/admins/{admin_id}/winnings/backfill")
def backfill_admin_winnings(admin_id: str, skip_existing: bool = False):
    result = settlement.backfill_admin_winnings(admin_id, skip_existing=skip_existing)
    return {"success": True, "message": "Admin winnings posted successfully", "data": result.model_dump()}


@app.post("/api/admins/{admin_id}/wallet/reconcile")
def reconcile_wallet(admin_id: str):
    return {"success": True, "data": settlement.reconcile_wallet(admin_id).model_dump()}


@app.get("/api/admins/{admin_id}/winnings")
def get_admin_winnings(admin_id: str,
                       date_from: Optional[datetime] = Query(None, alias="from"),
                       date_to: Optional[datetime] = Query(None, alias="to")):
    winnings = reporting.get_admin_winnings(admin_id, date_from, date_to)
    return {"success": True, "data": [w.model_dump() for w in winnings]}


@app.get("/api/admins/{admin_id}/game-totals")
def get_admin_game_totals(admin_id: str,
                          date_from: Optional[datetime] = Query(None, alias="from"),
                          date_to: Optional[datetime] = Query(None, alias="to")):
    totals = reporting.get_admin_game_totals(admin_id, date_from, date_to)
    return {"success": True, "data": totals.model_dump()}


# --- Games ---
@app.get("/api/games/current")
def get_current_game():
    return {"success": True, "data": reporting.get_current_game()}


@app.post("/api/games/{game_id}/winning-cards", status_code=201)
def record_winning_card(game_id: str, payload: RecordCard):
    card = settlement.record_winning_card(game_id, payload.card_id, payload.multiplier)
    return {"success": True, "data": card.model_dump()}


@app.post("/api/games/{game_id}/settle")
def settle_game(game_id: str):
    result = settlement.settle_game(game_id)
    return {"success": True, "data": result.model_dump()}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
