import json
import typing as t
from dataclasses import dataclass

from bitcoin.core import (
    CTransaction,
    CMutableTransaction,
    CMutableTxIn,
    CTxIn,
    CTxOut,
    CScript,
    COutPoint,
    CTxWitness,
    CTxInWitness,
    CScriptWitness,
)
from bitcoin.core import script

from .constants import (
    OP_CHECKTEMPLATEVERIFY,
    DEFAULT_VERSION,
    MAX_DATA_SIZE,
    MAX_MONEY,
    MAX_TEMPLATE_DEPTH,
    Sats,
    TxidStr,
)
from .errors import (
    DataTooLarge,
    InvalidAmount,
    InvalidTemplate,
    MalformedCommitment,
    MissingSequence,
    SerializationFailure,
    TemplateTooDeep,
    CtvError,
)
from .network import address_to_script_pubkey, p2wsh_address, p2wsh_script_pubkey, parse_network
from .utils import get_standard_template_hash, to_outpoint


def ctv_locking_script(tmplhash: bytes) -> CScript:
    """The bare `<H> OP_CHECKTEMPLATEVERIFY` script committing to `tmplhash`."""
    if len(tmplhash) != 32:
        raise MalformedCommitment(
            f"Template hash must be 32 bytes, got {len(tmplhash)}"
        )
    return CScript([tmplhash, OP_CHECKTEMPLATEVERIFY])


def _check_amount(amount: Sats) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer number of sats, got {amount!r}")
    if not 0 <= amount <= MAX_MONEY:
        raise InvalidAmount(f"Amount {amount} is out of range")


@dataclass(frozen=True)
class AddressOutput:
    """Pays `amount` to `address`, which must belong to the template's network."""

    address: str
    amount: Sats

    def __post_init__(self):
        _check_amount(self.amount)

    def as_txout(self, network: str, depth: int = 0) -> CTxOut:
        return CTxOut(self.amount, address_to_script_pubkey(self.address, network))

    def to_dict(self) -> dict:
        return {"type": "address", "address": self.address, "amount": self.amount}


@dataclass(frozen=True)
class DataOutput:
    """Zero-value OP_RETURN output carrying `data`."""

    data: bytes

    def as_txout(self, network: str, depth: int = 0) -> CTxOut:
        if len(self.data) > MAX_DATA_SIZE:
            raise DataTooLarge(
                f"Data output is {len(self.data)} bytes, the limit is {MAX_DATA_SIZE}"
            )
        return CTxOut(0, CScript([script.OP_RETURN, self.data]))

    def to_dict(self) -> dict:
        return {"type": "data", "data": self.data.hex()}


@dataclass(frozen=True)
class TreeOutput:
    """
    Pays `amount` into a P2WSH of `<H(template)> OP_CTV`, so the output can
    only be spent by the transaction `template` describes.
    """

    template: "Ctv"
    amount: Sats

    def __post_init__(self):
        _check_amount(self.amount)

    def as_txout(self, network: str, depth: int = 0) -> CTxOut:
        tmplhash = self.template.ctv(_depth=depth + 1)
        return CTxOut(self.amount, p2wsh_script_pubkey(ctv_locking_script(tmplhash)))

    def to_dict(self) -> dict:
        return {"type": "tree", "template": self.template.to_dict(), "amount": self.amount}


Output = t.Union[AddressOutput, DataOutput, TreeOutput]


@dataclass(frozen=True)
class Ctv:
    """
    Declarative template of a transaction that an OP_CTV output commits to.

    Outputs may themselves be trees, i.e. commitments to further templates,
    which gives a chain of spends that need no signatures:

          funding outpoint
                 |
            spend of Ctv             (<H(Ctv)> OP_CTV)
                 |
          outputs[0] = tree
                 |
          spend of nested Ctv        (<H(nested)> OP_CTV)
                 |
                ...

    The template says nothing about which outpoint it spends, so the same
    hash holds for any funding coin.
    """

    network: str
    version: int = DEFAULT_VERSION
    locktime: int = 0
    sequences: t.Tuple[int, ...] = (0,)
    outputs: t.Tuple[Output, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "network", parse_network(self.network))
        object.__setattr__(self, "sequences", tuple(self.sequences))
        object.__setattr__(self, "outputs", tuple(self.outputs))

        if not -(2**31) <= self.version < 2**31:
            raise InvalidTemplate(f"Version {self.version} does not fit in int32")
        if not 0 <= self.locktime <= 0xFFFFFFFF:
            raise InvalidTemplate(f"Locktime {self.locktime} does not fit in uint32")
        for seq in self.sequences:
            if not 0 <= seq <= 0xFFFFFFFF:
                raise InvalidTemplate(f"Sequence {seq} does not fit in uint32")
        for output in self.outputs:
            if not isinstance(output, (AddressOutput, DataOutput, TreeOutput)):
                raise InvalidTemplate(f"Not a template output: {output!r}")

    # Materialization
    # -------------------------------

    def as_tx(self, _depth: int = 0) -> CMutableTransaction:
        """
        The transaction skeleton this template hashes to. Inputs carry only
        their sequence; the prevout is left null.
        """
        tx = CMutableTransaction()
        tx.nVersion = self.version
        tx.nLockTime = self.locktime
        tx.vin = [CMutableTxIn(nSequence=seq) for seq in self.sequences]
        tx.vout = self.txouts(_depth)
        return tx

    def txouts(self, _depth: int = 0) -> t.List[CTxOut]:
        if _depth > MAX_TEMPLATE_DEPTH:
            raise TemplateTooDeep(
                f"Templates are nested more than {MAX_TEMPLATE_DEPTH} levels deep"
            )
        return [output.as_txout(self.network, _depth) for output in self.outputs]

    def ctv(self, _depth: int = 0) -> bytes:
        """Return the CTV hash committing to this template, spent at input 0."""
        return get_standard_template_hash(self.as_tx(_depth), 0)

    def locking_script(self) -> CScript:
        return ctv_locking_script(self.ctv())

    def address(self) -> str:
        """P2WSH address a coin must be sent to for this template to spend it."""
        return p2wsh_address(self.locking_script(), self.network)

    # Spending
    # -------------------------------

    def spending_tx(self, txid: TxidStr, vout: int) -> t.List[CTransaction]:
        """
        Spend `txid:vout` with this template and, while the first output is a
        tree, keep spending output 0 of the newest transaction with the nested
        template.

        Trees at other output indexes are not expanded.
        """
        if not 0 <= vout <= 0xFFFFFFFF:
            raise ValueError(f"Output index {vout} does not fit in uint32")

        transactions = []
        template, outpoint = self, to_outpoint(txid, vout)

        while True:
            tx = template._spend(outpoint)
            transactions.append(tx)

            first = template.outputs[0] if template.outputs else None
            if not isinstance(first, TreeOutput):
                return transactions
            template, outpoint = first.template, COutPoint(tx.GetTxid(), 0)

    def _spend(self, outpoint: COutPoint) -> CTransaction:
        if not self.sequences:
            raise MissingSequence("Template has no sequence to spend with")

        tx = CMutableTransaction()
        tx.nVersion = self.version
        tx.nLockTime = self.locktime
        tx.vin = [CTxIn(outpoint, nSequence=self.sequences[0])]
        tx.vout = self.txouts()
        # The witness is the script itself; P2WSH checks it against the
        # committed script hash and OP_CTV checks this transaction.
        tx.wit = CTxWitness([CTxInWitness(CScriptWitness([self.locking_script()]))])
        return CTransaction.from_tx(tx)

    # Interchange
    # -------------------------------

    def to_dict(self) -> dict:
        return {
            "network": self.network,
            "version": self.version,
            "locktime": self.locktime,
            "sequences": list(self.sequences),
            "outputs": [output.to_dict() for output in self.outputs],
        }

    @classmethod
    def from_dict(cls, d: dict, _depth: int = 0) -> "Ctv":
        if _depth > MAX_TEMPLATE_DEPTH:
            raise TemplateTooDeep(
                f"Templates are nested more than {MAX_TEMPLATE_DEPTH} levels deep"
            )
        if not isinstance(d, dict):
            raise SerializationFailure(f"Expected a template object, got {d!r}")
        try:
            return cls(
                network=_field(d, "network", str),
                version=_field(d, "version", int),
                locktime=_field(d, "locktime", int),
                sequences=[_int(seq) for seq in _field(d, "sequences", list)],
                outputs=[
                    output_from_dict(o, _depth) for o in _field(d, "outputs", list)
                ],
            )
        except (SerializationFailure, TemplateTooDeep):
            raise
        except (CtvError, ValueError) as e:
            raise SerializationFailure(str(e)) from e

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, s: str) -> "Ctv":
        return cls.from_dict(load_json(s))


def output_from_dict(d: dict, _depth: int = 0) -> Output:
    """Parse one output; the variant is chosen by its `type` field only."""
    if not isinstance(d, dict):
        raise SerializationFailure(f"Expected an output object, got {d!r}")

    kind = d.get("type")
    if kind == "address":
        return AddressOutput(_field(d, "address", str), _field(d, "amount", int))
    elif kind == "data":
        try:
            return DataOutput(bytes.fromhex(_field(d, "data", str)))
        except ValueError as e:
            raise SerializationFailure(f"Data output is not valid hex: {e}") from e
    elif kind == "tree":
        return TreeOutput(
            Ctv.from_dict(_field(d, "template", dict), _depth + 1),
            _field(d, "amount", int),
        )
    raise SerializationFailure(f"Unknown output type {kind!r}")


def load_json(s: str) -> t.Any:
    try:
        return json.loads(s)
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationFailure(f"Invalid JSON: {e}") from e


def _field(d: dict, key: str, kind: type) -> t.Any:
    if key not in d:
        raise SerializationFailure(f"Missing field {key!r}")
    value = d[key]
    if kind is int:
        return _int(value)
    if not isinstance(value, kind):
        raise SerializationFailure(
            f"Field {key!r} should be {kind.__name__}, got {value!r}"
        )
    return value


def _int(value: t.Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SerializationFailure(f"Expected an integer, got {value!r}")
    return value
