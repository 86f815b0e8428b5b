import json
import re
import typing as t
from dataclasses import dataclass, asdict

from bitcoin.core import (
    CTransaction,
    CTxIn,
    CScript,
    CTxWitness,
    CTxInWitness,
    CScriptWitness,
)
from bitcoin.core import script

from .constants import (
    OP_CHECKTEMPLATEVERIFY,
    DEFAULT_VERSION,
    MAX_BLOCK_DELAY,
    MAX_MONEY,
    VAULT_FEE,
    Sats,
    TxidStr,
)
from .errors import (
    CtvError,
    InvalidAddressForNetwork,
    InvalidAmount,
    InvalidDelay,
    SerializationFailure,
)
from .models import AddressOutput, Ctv, load_json
from .network import address_to_script_pubkey, p2wsh_address, p2wsh_script_pubkey, parse_network
from .utils import colorize, script_asm, to_outpoint

# Witness elements selecting a branch of the vault script (MINIMALIF).
HOT_BRANCH = b"\x01"
COLD_BRANCH = b""


def leaf_ctv(address: str, network: str, amount: Sats, sequence: int = 0) -> Ctv:
    """Single-output template sweeping the vault amount, less the fee, to `address`."""
    if amount <= VAULT_FEE:
        raise InvalidAmount(
            f"Vault amount {amount} must be greater than the {VAULT_FEE} sat fee"
        )
    return Ctv(
        network=network,
        version=DEFAULT_VERSION,
        locktime=0,
        sequences=(sequence,),
        outputs=(AddressOutput(address, amount - VAULT_FEE),),
    )


def whole_number(value: t.Union[int, float, str]) -> int:
    """
    `value` as an int, refusing anything that would need rounding.

    Accepts ints, integral floats and decimal digit strings with an optional
    sign; raises `ValueError` for the rest.
    """
    if isinstance(value, bool):
        raise ValueError(f"not a whole number: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and re.fullmatch(r"[-+]?[0-9]+", value.strip()):
        return int(value)
    raise ValueError(f"not a whole number: {value!r}")


def check_delay(delay: int) -> None:
    if isinstance(delay, bool) or not isinstance(delay, int):
        raise InvalidDelay(f"Delay must be an integer number of blocks, got {delay!r}")
    if not 1 <= delay <= MAX_BLOCK_DELAY:
        raise InvalidDelay(f"Delay must be between 1 and {MAX_BLOCK_DELAY} blocks")


def vault_locking_script(
    delay: int, cold: str, hot: str, network: str, amount: Sats
) -> CScript:
    """
    Two branch vault witness script:

        IF
            <delay> CHECKSEQUENCEVERIFY DROP
            <H(tohot_tx)> CHECKTEMPLATEVERIFY
        ELSE
            <H(tocold_tx)> CHECKTEMPLATEVERIFY
        ENDIF

    Neither branch needs a signature; the coins can only move to one of the two
    committed transactions, and the cold one is available at any time.
    """
    check_delay(delay)
    hot_hash = leaf_ctv(hot, network, amount, sequence=delay).ctv()
    cold_hash = leaf_ctv(cold, network, amount).ctv()
    return CScript(
        [
            # fmt: off
            script.OP_IF,
                delay, script.OP_CHECKSEQUENCEVERIFY, script.OP_DROP,
                hot_hash, OP_CHECKTEMPLATEVERIFY,
            script.OP_ELSE,
                cold_hash, OP_CHECKTEMPLATEVERIFY,
            script.OP_ENDIF,
            # fmt: on
        ]
    )


@dataclass(frozen=True)
class Vault:
    """
    A hot/cold vault, described entirely by its five fields.

          funding outpoint                     amount
                 |
            unvault_tx       (vault_ctv)       amount
     (<delay> CSV <H(hot)> CTV | <H(cold)> CTV)
              /               \\
        tohot_tx           tocold_tx          amount - fee
       (hot_ctv)          (cold_ctv)

    All templates are recomputed on demand, so two equal vaults always give
    identical scripts, hashes and addresses.
    """

    hot: str
    cold: str
    amount: Sats
    # Relative delay, in blocks, of the hot path.
    delay: int
    network: str

    def __post_init__(self):
        object.__setattr__(self, "network", parse_network(self.network))
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise InvalidAmount(f"Amount must be an integer number of sats, got {self.amount!r}")
        if not VAULT_FEE < self.amount <= MAX_MONEY:
            raise InvalidAmount(
                f"Vault amount must be greater than {VAULT_FEE} sats and at most {MAX_MONEY}"
            )
        check_delay(self.delay)

    @classmethod
    def from_request(
        cls,
        hot: str,
        cold: str,
        amount: t.Union[int, str],
        delay: t.Union[int, str],
        network: str,
    ) -> "Vault":
        """
        Build a vault from user input, rejecting bad addresses, wrong networks,
        fractional or non-positive amounts and out of range delays up front.
        """
        try:
            amount = whole_number(amount)
        except (TypeError, ValueError):
            raise InvalidAmount(f"Amount must be a whole number of sats, got {amount!r}")
        try:
            delay = whole_number(delay)
        except (TypeError, ValueError):
            raise InvalidDelay(f"Delay must be a whole number of blocks, got {delay!r}")

        vault = cls(hot=hot.strip(), cold=cold.strip(), amount=amount, delay=delay, network=network)
        address_to_script_pubkey(vault.hot, vault.network)
        address_to_script_pubkey(vault.cold, vault.network)
        return vault

    # Templates
    # -------------------------------

    def hot_ctv(self) -> Ctv:
        return leaf_ctv(self.hot, self.network, self.amount, sequence=self.delay)

    def cold_ctv(self) -> Ctv:
        return leaf_ctv(self.cold, self.network, self.amount)

    def vault_ctv(self) -> Ctv:
        """Template moving `amount` from a CTV-locked coin into the vault script."""
        return Ctv(
            network=self.network,
            version=DEFAULT_VERSION,
            locktime=0,
            sequences=(0,),
            outputs=(AddressOutput(self.vault_address(), self.amount),),
        )

    # Scripts and addresses
    # -------------------------------

    def locking_script(self) -> CScript:
        return vault_locking_script(
            self.delay, self.cold, self.hot, self.network, self.amount
        )

    def vault_address(self) -> str:
        """The deposit address: P2WSH of the vault script."""
        locking_script = self.locking_script()
        address = p2wsh_address(locking_script, self.network)
        if address_to_script_pubkey(address, self.network) != p2wsh_script_pubkey(locking_script):
            raise InvalidAddressForNetwork(address, self.network)
        return address

    def colorized_script(self) -> str:
        return colorize(script_asm(self.locking_script()))

    # Transactions
    # -------------------------------

    def unvault_tx(self, txid: TxidStr, vout: int) -> CTransaction:
        return self.vault_ctv().spending_tx(txid, vout)[0]

    def hot_tx(self, txid: TxidStr, vout: int = 0) -> CTransaction:
        """Sweep the vault output at `txid:vout` to the hot address, after the delay."""
        return self._branch_tx(self.hot_ctv(), HOT_BRANCH, txid, vout)

    def cold_tx(self, txid: TxidStr, vout: int = 0) -> CTransaction:
        """Sweep the vault output at `txid:vout` to the cold address, immediately."""
        return self._branch_tx(self.cold_ctv(), COLD_BRANCH, txid, vout)

    def _branch_tx(
        self, template: Ctv, branch: bytes, txid: TxidStr, vout: int
    ) -> CTransaction:
        tx = template.as_tx()
        tx.vin = [CTxIn(to_outpoint(txid, vout), nSequence=template.sequences[0])]
        tx.wit = CTxWitness(
            [CTxInWitness(CScriptWitness([branch, self.locking_script()]))]
        )
        return CTransaction.from_tx(tx)

    # Interchange
    # -------------------------------

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Vault":
        if not isinstance(d, dict):
            raise SerializationFailure(f"Expected a vault object, got {d!r}")
        missing = [k for k in ("hot", "cold", "amount", "delay", "network") if k not in d]
        if missing:
            raise SerializationFailure(f"Vault is missing {', '.join(missing)}")
        if not all(isinstance(d[k], str) for k in ("hot", "cold", "network")):
            raise SerializationFailure("Vault addresses and network must be strings")
        try:
            return cls(
                hot=d["hot"],
                cold=d["cold"],
                amount=d["amount"],
                delay=d["delay"],
                network=d["network"],
            )
        except CtvError as e:
            raise SerializationFailure(str(e)) from e

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, s: str) -> "Vault":
        return cls.from_dict(load_json(s))
