"""
Settlement engine: turns a finished game and its winning card into admin
winning entries, and credits wallets for manually posted winnings.

Payout for an admin in a game is the sum of amount * (multiplier * 10) over
the stakes placed on the winning card.
"""

import os
from typing import Dict, List

from loguru import logger

import stores
from errors import InvalidInput, NotFound, SettlementInProgress, tagged_errors
from schemas import AdminWinning, BackfillResult, SettlementResult, WalletReconciliation, WinningCard

PAYOUT_UNIT = 10

# seconds a settlement or wallet credit claim is honoured before another run may take it over
CLAIM_LEASE_SECONDS = int(os.getenv("CLAIM_LEASE_SECONDS", 300))


def stake_payout(cards: List[dict], card_id: int, multiplier: float) -> float:
    """Payout for one bet's stakes against a winning card."""
    return sum(
        stake["amount"] * (multiplier * PAYOUT_UNIT)
        for stake in cards
        if stake["card_no"] == card_id
    )


def game_payouts(game: dict, card: dict) -> Dict[str, float]:
    """Payout per admin for a game, summed over each admin's bets, in bet order."""
    payouts: Dict[str, float] = {}
    for bet in game.get("bets", []):
        admin_id = bet["admin_id"]
        amount = stake_payout(bet.get("cards", []), card["card_id"], card["multiplier"])
        payouts[admin_id] = payouts.get(admin_id, 0) + amount
    return payouts


def admin_payout(game: dict, card: dict, admin_id: str) -> float:
    return game_payouts(game, card).get(admin_id, 0)


def _resolve_card(game_id: str):
    return stores.authoritative_card(stores.find_winning_cards_for_game(game_id))


@tagged_errors("recording winning card")
def record_winning_card(game_id: str, card_id: int, multiplier: float) -> WinningCard:
    """Append the resolver's pick for a game; the latest append settles it."""
    if not stores.find_game(game_id):
        raise NotFound("Game not found")
    card = stores.record_winning_card(game_id, card_id, multiplier)
    logger.info(f"Recorded winning card {card_id} x{multiplier} for game {game_id} (#{card.seq})")
    return card


@tagged_errors("game settlement")
def settle_game(game_id: str) -> SettlementResult:
    """Write a winning entry for every admin with a positive payout.

    Settlement only writes ledger rows, the wallet is left alone. The game is
    claimed first: a call after a finished settlement returns already_settled,
    a call while another run holds the claim raises SettlementInProgress. If
    the run stops part way the claim is dropped (or expires after the lease
    when the process died), entries already written stay, and the next attempt
    skips the admins that already have theirs.
    """
    if not game_id:
        raise InvalidInput("game_id is required")

    game = stores.find_game(game_id)
    if not game:
        raise NotFound("Game not found")

    card = _resolve_card(game_id)
    if not card:
        raise NotFound("No winning card recorded for game")

    result = SettlementResult(game_id=game_id, card_id=card["card_id"], multiplier=card["multiplier"])

    token = stores.claim_settlement(game_id, CLAIM_LEASE_SECONDS)
    if token is None:
        if stores.settlement_status(game_id) == "settled":
            logger.info(f"Game {game_id} is already settled, skipping")
            result.already_settled = True
            return result
        logger.warning(f"Game {game_id} is being settled by another run")
        raise SettlementInProgress(f"Settlement of game {game_id} is in progress, retry later")

    settled = False
    try:
        for admin_id, amount in game_payouts(game, card).items():
            logger.debug(f"Game {game_id}: admin {admin_id} payout {amount}")
            if amount <= 0:
                continue
            # left over from an interrupted run
            if stores.has_winning(admin_id, game_id, source="settlement"):
                continue
            result.entries.append(stores.insert_winning(admin_id, game_id, amount, source="settlement"))
        if not stores.finish_settlement(game_id, token, len(result.entries)):
            logger.warning(f"Settlement claim for game {game_id} was taken over before this run finished")
        settled = True
    finally:
        if not settled:
            stores.release_settlement(game_id, token)

    logger.info(
        f"Settled game {game_id} on card {card['card_id']} x{card['multiplier']}: "
        f"{len(result.entries)} winning entries"
    )
    return result


def _apply_wallet_credit(entry: AdminWinning) -> AdminWinning:
    """Credit the wallet for an entry this caller holds in crediting state."""
    applied = False
    try:
        outcome = stores.increment_wallet(entry.admin_id, entry.winning_amount, entry.id)
        if outcome == "missing_admin":
            raise NotFound(f"Admin {entry.admin_id} not found, winning {entry.id} left pending")
        if outcome == "already_credited":
            logger.warning(f"Winning {entry.id} was already credited to {entry.admin_id}")
        stores.mark_wallet_applied(entry.id)
        applied = True
    finally:
        if not applied:
            stores.release_wallet_credit(entry.id)
    stores.forget_applied_winning(entry.admin_id, entry.id)
    return entry.model_copy(update={"wallet_status": "applied"})


@tagged_errors("adding admin winning")
def add_admin_winning(admin_id: str, game_id: str, winning_amount: float) -> AdminWinning:
    """Post a winning by hand: ledger entry first, then the wallet credit."""
    if not admin_id or not game_id or not winning_amount:
        raise InvalidInput("admin_id, game_id, and winning_amount are required")
    if winning_amount < 0:
        raise InvalidInput("winning_amount must be positive")

    if not stores.find_admin_by_id(admin_id):
        raise NotFound("Admin not found")

    entry = stores.insert_winning(admin_id, game_id, winning_amount, source="manual", wallet_status="crediting")
    entry = _apply_wallet_credit(entry)
    logger.info(f"Added winning of {winning_amount} for admin {admin_id} on game {game_id}")
    return entry


@tagged_errors("wallet reconciliation")
def reconcile_wallet(admin_id: str) -> WalletReconciliation:
    """Credit every manual winning whose wallet update never completed."""
    if not admin_id:
        raise InvalidInput("admin_id is required")
    if not stores.find_admin_by_id(admin_id):
        raise NotFound("Admin not found")

    result = WalletReconciliation(admin_id=admin_id)
    for entry in stores.find_pending_wallet_credits(admin_id):
        if not stores.claim_wallet_credit(entry.id, CLAIM_LEASE_SECONDS):
            logger.debug(f"Wallet credit {entry.id} is held by another run")
            continue
        logger.warning(f"Applying pending wallet credit {entry.id} of {entry.winning_amount} for {admin_id}")
        _apply_wallet_credit(entry)
        result.applied += 1
        result.amount += entry.winning_amount
    return result


@tagged_errors("posting admin winnings")
def backfill_admin_winnings(admin_id: str, skip_existing: bool = False) -> BackfillResult:
    """Re-post winnings for every game the admin has bet in.

    Without skip_existing no existing entries are consulted, so calling this
    twice writes every entry twice. The wallet is never touched.
    """
    if not admin_id:
        raise InvalidInput("admin_id is required")
    if not stores.find_admin_by_id(admin_id):
        raise NotFound("Admin not found")

    result = BackfillResult(admin_id=admin_id)
    for game in stores.find_games_by_admin(admin_id):
        game_id = game["game_id"]
        card = _resolve_card(game_id)
        if not card:
            logger.warning(f"No winning card for game {game_id}, skipping")
            continue

        amount = admin_payout(game, card, admin_id)
        if amount <= 0:
            continue
        if skip_existing and stores.has_winning(admin_id, game_id):
            logger.debug(f"Admin {admin_id} already has a winning for game {game_id}")
            continue

        result.entries.append(stores.insert_winning(admin_id, game_id, amount, source="backfill"))
        result.total_winnings += amount

    logger.info(
        f"Posted {len(result.entries)} winnings for admin {admin_id}, total {result.total_winnings}"
    )
    return result
