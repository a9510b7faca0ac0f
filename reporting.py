"""
Reporting over games, ledger entries and result snapshots.
"""

from datetime import datetime, time
from typing import List, Optional, Tuple

from loguru import logger

import stores
from database import as_utc
from errors import InvalidInput, NotFound, tagged_errors
from schemas import AdminGameTotals, AdminWinning
from settlement import admin_payout

COMMISSION_RATE = 0.05


def resolve_report_range(date_from: Optional[datetime] = None,
                         date_to: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Fill missing bounds with the current local day, returned as naive UTC."""
    today = datetime.now().astimezone()
    start_of_day = datetime.combine(today.date(), time.min, tzinfo=today.tzinfo)
    end_of_day = datetime.combine(today.date(), time(23, 59, 59, 999000), tzinfo=today.tzinfo)
    return as_utc(date_from or start_of_day), as_utc(date_to or end_of_day)


def calculate_admin_game_totals(games: List[dict], results: List[dict], admin_id: str,
                                winning_cards: Optional[List[dict]] = None) -> AdminGameTotals:
    total_bet_amount = 0
    total_win_amount = 0
    total_claimed_amount = 0
    calculated_win_amount = 0

    # cards arrive in append order, so the last one per game wins
    cards_by_game = {card["game_id"]: card for card in winning_cards or []}

    # every stake counts towards the bet total, not just the winning card
    for game in games:
        for bet in game.get("bets", []):
            if bet["admin_id"] != admin_id:
                continue
            total_bet_amount += sum(stake["amount"] for stake in bet.get("cards", []))
        card = cards_by_game.get(game["game_id"])
        if card:
            calculated_win_amount += admin_payout(game, card, admin_id)

    for result in results:
        winner = next((w for w in result.get("winners", []) if w["admin_id"] == admin_id), None)
        if winner is None:
            continue
        win_amount = winner.get("win_amount") or 0
        total_win_amount += win_amount
        if winner.get("status") == "claimed":
            total_claimed_amount += win_amount

    end_amount = total_bet_amount - total_win_amount
    commission = total_bet_amount * COMMISSION_RATE
    return AdminGameTotals(
        total_bet_amount=total_bet_amount,
        total_win_amount=total_win_amount,
        end_amount=end_amount,
        commission=commission,
        total_claimed_amount=total_claimed_amount,
        unclaimed_amount=total_win_amount - total_claimed_amount,
        ntp=end_amount - commission,
        calculated_win_amount=calculated_win_amount,
    )


def fetch_admin_game_data(admin_id: str, date_from: datetime, date_to: datetime) -> dict:
    games = stores.find_games_by_admin(admin_id, date_from, date_to)
    game_ids = [game["game_id"] for game in games]
    return {
        "games": games,
        "winning_cards": stores.find_winning_cards_for_games(game_ids),
        "results": stores.find_results_for_games_and_admin(game_ids, admin_id),
        "admin": stores.find_admin_by_id(admin_id),
    }


@tagged_errors("admin game totals")
def get_admin_game_totals(admin_id: str, date_from: Optional[datetime] = None,
                          date_to: Optional[datetime] = None) -> AdminGameTotals:
    """Bet, win, commission and net-to-platform totals for an admin.

    Win amounts come from the finalized result snapshots. The payout recomputed
    from the winning cards is reported beside them as calculated_win_amount.
    """
    if not admin_id:
        raise InvalidInput("admin_id is required")

    date_from, date_to = resolve_report_range(date_from, date_to)
    data = fetch_admin_game_data(admin_id, date_from, date_to)
    if not data["admin"]:
        raise NotFound("Admin not found")

    totals = calculate_admin_game_totals(data["games"], data["results"], admin_id, data["winning_cards"])
    if totals.calculated_win_amount != totals.total_win_amount:
        logger.warning(
            f"Admin {admin_id}: result snapshots show {totals.total_win_amount} won, "
            f"winning cards give {totals.calculated_win_amount}"
        )
    logger.debug(
        f"Totals for {admin_id} from {date_from} to {date_to} over {len(data['games'])} games: {totals}"
    )
    return totals


@tagged_errors("fetching admin winnings")
def get_admin_winnings(admin_id: str, date_from: Optional[datetime] = None,
                       date_to: Optional[datetime] = None) -> List[AdminWinning]:
    """Ledger entries for an admin, newest first."""
    if not admin_id:
        raise InvalidInput("admin_id is required")
    winnings = stores.find_winnings(admin_id, date_from, date_to)
    if not winnings:
        raise NotFound("No winnings found for this admin within the specified date range")
    return winnings


@tagged_errors("fetching current game")
def get_current_game() -> dict:
    game = stores.find_latest_game()
    if not game:
        raise NotFound("No active game found")
    return {"game_id": game["game_id"], "game_no": game.get("game_no"), "created_at": game.get("created_at")}


@tagged_errors("listing admins")
def list_admins() -> List[dict]:
    return [
        {
            "admin_id": admin["admin_id"],
            "name": admin.get("name"),
            "email": admin.get("email"),
            "created_at": admin.get("created_at"),
            "wallet_balance": admin.get("wallet", 0),
        }
        for admin in stores.list_admins()
    ]


@tagged_errors("fetching admin profile")
def get_admin_profile(admin_id: str) -> dict:
    if not admin_id:
        raise InvalidInput("admin_id is required")
    admin = stores.find_admin_by_id(admin_id)
    if not admin:
        raise NotFound("Admin not found")
    return {
        "admin_id": admin["admin_id"],
        "name": admin.get("name"),
        "email": admin.get("email"),
        "wallet": admin.get("wallet", 0),
        "joined_date": admin.get("created_at"),
    }
