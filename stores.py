"""
Data access for games, winning cards, admins, ledger entries and result
snapshots. Functions return plain documents (or schema models for ledger
entries) and leave all business decisions to the callers.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional
from uuid import uuid4

from bson import ObjectId
from loguru import logger
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

import database
from database import as_utc, create_document, get_documents, utcnow
from schemas import AdminWinning, WinningCard


def _date_filter(date_from: Optional[datetime], date_to: Optional[datetime]) -> dict:
    bounds = {}
    if date_from is not None:
        bounds["$gte"] = as_utc(date_from)
    if date_to is not None:
        bounds["$lte"] = as_utc(date_to)
    return {"created_at": bounds} if bounds else {}


# --- Games ---

def find_game(game_id: str) -> Optional[dict]:
    return database.get_db()["game"].find_one({"game_id": game_id})


def find_games_by_admin(admin_id: str, date_from: Optional[datetime] = None,
                        date_to: Optional[datetime] = None) -> List[dict]:
    filt = {"bets.admin_id": admin_id, **_date_filter(date_from, date_to)}
    return get_documents("game", filt, sort=[("created_at", ASCENDING), ("_id", ASCENDING)])


def find_games_by_ids(game_ids: Iterable[str]) -> List[dict]:
    return get_documents("game", {"game_id": {"$in": list(game_ids)}})


def find_latest_game() -> Optional[dict]:
    games = get_documents("game", {}, limit=1, sort=[("created_at", DESCENDING), ("_id", DESCENDING)])
    return games[0] if games else None


# --- Winning cards ---

def find_winning_cards_for_game(game_id: str) -> List[dict]:
    """Winning card selections for a game in append order."""
    return get_documents("winningcard", {"game_id": game_id}, sort=[("seq", ASCENDING), ("_id", ASCENDING)])


def find_winning_cards_for_games(game_ids: Iterable[str]) -> List[dict]:
    return get_documents(
        "winningcard",
        {"game_id": {"$in": list(game_ids)}},
        sort=[("game_id", ASCENDING), ("seq", ASCENDING), ("_id", ASCENDING)],
    )


def authoritative_card(cards: List[dict]) -> Optional[dict]:
    """The last appended selection is the one that settles the game."""
    return cards[-1] if cards else None


def record_winning_card(game_id: str, card_id: int, multiplier: float) -> WinningCard:
    """Append a winning card selection to the game's log."""
    counter = database.get_db()["counter"].find_one_and_update(
        {"_id": f"winningcard:{game_id}"},
        {"$inc": {"value": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    card = WinningCard(game_id=game_id, card_id=card_id, multiplier=multiplier,
                       seq=counter["value"], created_at=utcnow())
    create_document("winningcard", card)
    return card


# --- Admins and wallets ---

def find_admin_by_id(admin_id: str) -> Optional[dict]:
    return database.get_db()["admin"].find_one({"admin_id": admin_id})


def list_admins() -> List[dict]:
    return get_documents("admin", {}, sort=[("created_at", ASCENDING)])


def increment_wallet(admin_id: str, amount: float, entry_id: str) -> str:
    """Credit the wallet for a ledger entry.

    The increment and the applied marker live on the same document, so the
    update is atomic and a second call for the same entry matches nothing.
    Returns "credited", "already_credited", or "missing_admin".
    """
    collection = database.get_db()["admin"]
    result = collection.update_one(
        {"admin_id": admin_id, "applied_winnings": {"$ne": entry_id}},
        {"$inc": {"wallet": amount}, "$addToSet": {"applied_winnings": entry_id}},
    )
    if result.modified_count == 1:
        return "credited"
    if collection.find_one({"admin_id": admin_id}, {"_id": 1}) is None:
        return "missing_admin"
    return "already_credited"


def forget_applied_winning(admin_id: str, entry_id: str) -> None:
    """Drop the marker once the ledger entry itself records the credit."""
    database.get_db()["admin"].update_one({"admin_id": admin_id}, {"$pull": {"applied_winnings": entry_id}})


# --- Ledger ---

def _entry(doc: dict) -> AdminWinning:
    return AdminWinning(
        id=str(doc["_id"]),
        admin_id=doc["admin_id"],
        game_id=doc["game_id"],
        winning_amount=doc["winning_amount"],
        source=doc["source"],
        wallet_status=doc.get("wallet_status", "not_applicable"),
        created_at=doc.get("created_at"),
    )


def insert_winning(admin_id: str, game_id: str, winning_amount: float, source: str,
                   wallet_status: str = "not_applicable") -> AdminWinning:
    entry = AdminWinning(admin_id=admin_id, game_id=game_id, winning_amount=winning_amount,
                         source=source, wallet_status=wallet_status)
    doc = entry.model_dump(exclude={"id"})
    if wallet_status == "crediting":
        doc["credit_started_at"] = utcnow()
    new_id = create_document("adminwinning", doc)
    doc = database.get_db()["adminwinning"].find_one({"_id": ObjectId(new_id)})
    return _entry(doc)


def has_winning(admin_id: str, game_id: str, source: Optional[str] = None) -> bool:
    filt = {"admin_id": admin_id, "game_id": game_id}
    if source:
        filt["source"] = source
    return database.get_db()["adminwinning"].find_one(filt, {"_id": 1}) is not None


def find_winnings(admin_id: str, date_from: Optional[datetime] = None,
                  date_to: Optional[datetime] = None) -> List[AdminWinning]:
    filt = {"admin_id": admin_id, **_date_filter(date_from, date_to)}
    docs = get_documents("adminwinning", filt, sort=[("created_at", DESCENDING), ("_id", DESCENDING)])
    return [_entry(d) for d in docs]


def find_pending_wallet_credits(admin_id: str) -> List[AdminWinning]:
    """Entries whose wallet credit never completed, stalled runs included."""
    docs = get_documents("adminwinning",
                         {"admin_id": admin_id, "wallet_status": {"$in": ["pending", "crediting"]}},
                         sort=[("_id", ASCENDING)])
    return [_entry(d) for d in docs]


def claim_wallet_credit(entry_id: str, lease_seconds: int) -> bool:
    """Move an entry to crediting so only one caller applies it.

    A crediting claim older than the lease belongs to a run that died and can
    be taken over.
    """
    now = utcnow()
    result = database.get_db()["adminwinning"].update_one(
        {"_id": ObjectId(entry_id), "$or": [
            {"wallet_status": "pending"},
            {"wallet_status": "crediting", "credit_started_at": {"$lt": now - timedelta(seconds=lease_seconds)}},
        ]},
        {"$set": {"wallet_status": "crediting", "credit_started_at": now, "updated_at": now}},
    )
    return result.modified_count == 1


def release_wallet_credit(entry_id: str) -> None:
    database.get_db()["adminwinning"].update_one(
        {"_id": ObjectId(entry_id), "wallet_status": "crediting"},
        {"$set": {"wallet_status": "pending", "updated_at": utcnow()}},
    )


def mark_wallet_applied(entry_id: str) -> None:
    database.get_db()["adminwinning"].update_one(
        {"_id": ObjectId(entry_id)},
        {"$set": {"wallet_status": "applied", "updated_at": utcnow()}},
    )


# --- Result snapshots ---

def find_results_for_games_and_admin(game_ids: Iterable[str], admin_id: str) -> List[dict]:
    return get_documents("admingameresult", {"game_id": {"$in": list(game_ids)}, "winners.admin_id": admin_id})


# --- Settlement claims ---

def claim_settlement(game_id: str, lease_seconds: int) -> Optional[str]:
    """Claim a game for settlement and return the claim token.

    A claim left in_progress for longer than the lease belongs to a run that
    died without releasing it and is taken over. Returns None when the game is
    settled or another live run holds it.
    """
    collection = database.get_db()["gamesettlement"]
    token = uuid4().hex
    now = utcnow()
    try:
        collection.insert_one(
            {"game_id": game_id, "status": "in_progress", "token": token, "entries": 0, "started_at": now}
        )
        return token
    except DuplicateKeyError:
        pass

    stale = collection.find_one_and_update(
        {"game_id": game_id, "status": "in_progress",
         "started_at": {"$lt": now - timedelta(seconds=lease_seconds)}},
        {"$set": {"token": token, "started_at": now}},
    )
    if stale:
        logger.warning(f"Taking over stale settlement claim for game {game_id} from {stale.get('started_at')}")
        return token
    return None


def settlement_status(game_id: str) -> Optional[str]:
    claim = database.get_db()["gamesettlement"].find_one({"game_id": game_id})
    return claim["status"] if claim else None


def finish_settlement(game_id: str, token: str, entries: int) -> bool:
    """Mark the claim settled. False when the claim was taken over meanwhile."""
    result = database.get_db()["gamesettlement"].update_one(
        {"game_id": game_id, "token": token},
        {"$set": {"status": "settled", "entries": entries, "finished_at": utcnow()}},
    )
    return result.matched_count == 1


def release_settlement(game_id: str, token: str) -> None:
    database.get_db()["gamesettlement"].delete_one({"game_id": game_id, "token": token, "status": "in_progress"})
