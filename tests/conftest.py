"""Test configuration and fixtures for the admin ledger."""
import mongomock
import pytest

import database
from database import create_document
from schemas import Admin, Game


@pytest.fixture(autouse=True)
def mongo_db(monkeypatch):
    """Swap the module level database for a fresh in-memory one."""
    db = mongomock.MongoClient()["ledger_test"]
    monkeypatch.setattr(database, "db", db)
    database.ensure_indexes()
    return db


@pytest.fixture
def add_admin():
    """Create an admin document."""
    def _add(admin_id="A1", wallet=0.0, name=None):
        create_document("admin", Admin(admin_id=admin_id, name=name or f"Admin {admin_id}",
                                       email=f"{admin_id.lower()}@example.com", wallet=wallet))
        return admin_id
    return _add


@pytest.fixture
def add_game():
    """Create a game from (admin_id, [(card_no, amount), ...]) pairs."""
    def _add(game_id="G1", bets=None, created_at=None, game_no=1):
        bet_docs = []
        for admin_id, stakes in bets or []:
            bet_docs.append({
                "admin_id": admin_id,
                "cards": [{"card_no": card_no, "amount": amount} for card_no, amount in stakes],
            })
        create_document("game", Game(game_id=game_id, game_no=game_no, bets=bet_docs, created_at=created_at))
        return game_id
    return _add


@pytest.fixture
def add_result(mongo_db):
    """Create a finalized result snapshot."""
    def _add(game_id, winners):
        mongo_db["admingameresult"].insert_one({
            "game_id": game_id,
            "winners": [
                {"admin_id": admin_id, "win_amount": amount, "status": status}
                for admin_id, amount, status in winners
            ],
        })
    return _add


@pytest.fixture
def wallet_of(mongo_db):
    def _wallet(admin_id):
        return mongo_db["admin"].find_one({"admin_id": admin_id})["wallet"]
    return _wallet
