# Ledger Configuration
# Bankroll, dedup and settlement parameters for the position ledger

import os
from pathlib import Path

# Simulated starting bankroll (cash units)
INITIAL_BANKROLL = 1000.0

# Same event + market seen again within this window is a duplicate (ms)
DEDUP_WINDOW_MS = 600_000

# Max pending positions verified per settlement pass (oldest first)
SETTLEMENT_BATCH_SIZE = 5

# Note attached when the oracle confirms a result without details
DEFAULT_SETTLEMENT_NOTE = "Verified via AI Market Search"

# Snapshot persistence
STORAGE_KEY = "ninja_bets"
BASE_DIR = Path(__file__).resolve().parents[2]
DB_PATH = Path(os.getenv("QUANT_NINJA_DB", BASE_DIR / "Data" / "QuantNinja.sqlite"))

# Books shown in the exposure breakdown
TRACKED_BOOKS = ("FanDuel", "DraftKings", "BetMGM", "Caesars")
