"""
Database Schemas for the Card Game Admin Ledger

Each Pydantic model represents a collection in MongoDB.
Collection name is the lowercase of the class name (e.g., Admin -> "admin").

- Admin -> "admin"
- Game -> "game" (bets are embedded)
- WinningCard -> "winningcard"
- AdminWinning -> "adminwinning" (the winnings ledger)
- AdminGameResult -> "admingameresult"

The remaining models are operation results, not collections.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime


class Admin(BaseModel):
    admin_id: str = Field(..., description="Public admin identifier")
    name: str
    email: Optional[str] = None
    wallet: float = Field(0.0, description="Wallet balance, only ever credited here")
    applied_winnings: List[str] = Field(default_factory=list, description="Ledger entry ids already credited")
    created_at: Optional[datetime] = None


class Stake(BaseModel):
    card_no: int
    amount: float = Field(..., ge=0)


class Bet(BaseModel):
    admin_id: str
    cards: List[Stake] = Field(default_factory=list)


class Game(BaseModel):
    game_id: str = Field(..., description="Game identifier")
    game_no: Optional[int] = Field(None, description="Sequence number")
    bets: List[Bet] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class WinningCard(BaseModel):
    game_id: str
    card_id: int
    multiplier: float = Field(..., ge=0)
    seq: int = Field(..., ge=1, description="Append position within the game")
    created_at: Optional[datetime] = None


class AdminWinning(BaseModel):
    id: Optional[str] = None
    admin_id: str
    game_id: str
    winning_amount: float
    source: Literal["settlement", "manual", "backfill"]
    wallet_status: Literal["not_applicable", "pending", "crediting", "applied"] = "not_applicable"
    created_at: Optional[datetime] = None


class Winner(BaseModel):
    admin_id: str
    win_amount: float = 0.0
    status: Literal["claimed", "unclaimed"] = "unclaimed"


class AdminGameResult(BaseModel):
    game_id: str
    winners: List[Winner] = Field(default_factory=list)


# --- Operation results ---

class SettlementResult(BaseModel):
    game_id: str
    card_id: int
    multiplier: float
    already_settled: bool = False
    entries: List[AdminWinning] = Field(default_factory=list)


class BackfillResult(BaseModel):
    admin_id: str
    total_winnings: float = 0.0
    entries: List[AdminWinning] = Field(default_factory=list)


class WalletReconciliation(BaseModel):
    admin_id: str
    applied: int = 0
    amount: float = 0.0


class AdminGameTotals(BaseModel):
    total_bet_amount: float = 0.0
    total_win_amount: float = 0.0
    end_amount: float = 0.0
    commission: float = 0.0
    total_claimed_amount: float = 0.0
    unclaimed_amount: float = 0.0
    ntp: float = Field(0.0, description="Net to platform")
    calculated_win_amount: float = Field(0.0, description="Payout recomputed from the winning cards")
