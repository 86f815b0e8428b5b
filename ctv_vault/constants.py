from bitcoin.core import COIN
from bitcoin.core import script

OP_CHECKTEMPLATEVERIFY = script.OP_NOP4

Sats = int
TxidStr = str
RawTxStr = str

# Flat fee taken from the vault amount by each leaf (hot/cold) transaction.
VAULT_FEE: Sats = 600

MAX_MONEY: Sats = 21_000_000 * COIN

# Largest single push a script may carry.
MAX_DATA_SIZE = script.MAX_SCRIPT_ELEMENT_SIZE

# How many templates may be nested inside one another through tree outputs.
MAX_TEMPLATE_DEPTH = 100

# BIP-68 relative locktimes are 16 bits of blocks.
MAX_BLOCK_DELAY = 0xFFFF

DEFAULT_VERSION = 2
DEFAULT_NETWORK = "regtest"
