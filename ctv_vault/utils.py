import re
import struct
import hashlib
import typing as t

from bitcoin.core import CTransaction, COutPoint, CScript
from bitcoin.core import script

from .constants import TxidStr


def sha256(s) -> bytes:
    return hashlib.sha256(s).digest()


def ser_compact_size(l) -> bytes:
    r = b""
    if l < 253:
        r = struct.pack("B", l)
    elif l < 0x10000:
        r = struct.pack("<BH", 253, l)
    elif l < 0x100000000:
        r = struct.pack("<BI", 254, l)
    else:
        r = struct.pack("<BQ", 255, l)
    return r


def ser_string(s) -> bytes:
    return ser_compact_size(len(s)) + s


def get_standard_template_hash(tx: CTransaction, nIn: int) -> bytes:
    """
    BIP-119 DefaultCheckTemplateVerifyHash of `tx` for the input at `nIn`.

    The scriptSig digest is only part of the preimage when at least one
    input carries a non-empty scriptSig.
    """
    r = b""
    r += struct.pack("<i", tx.nVersion)
    r += struct.pack("<I", tx.nLockTime)
    vin = tx.vin or []
    vout = tx.vout or []
    if any(inp.scriptSig for inp in vin):
        r += sha256(b"".join(ser_string(inp.scriptSig) for inp in vin))
    r += struct.pack("<I", len(vin))
    r += sha256(b"".join(struct.pack("<I", inp.nSequence) for inp in vin))
    r += struct.pack("<I", len(vout))
    r += sha256(b"".join(out.serialize() for out in vout))
    r += struct.pack("<I", nIn)
    return sha256(r)


def txid_to_bytes(txid: str) -> bytes:
    """Convert the txids output by Bitcoin Core (little endian) to bytes."""
    return bytes.fromhex(txid)[::-1]


def bytes_to_txid(b: bytes) -> str:
    """Convert big-endian bytes to Core-style txid str."""
    return b[::-1].hex()


def to_outpoint(txid: TxidStr, n: int) -> COutPoint:
    h = txid_to_bytes(txid)
    if len(h) != 32:
        raise ValueError(f"txid must be 32 bytes of hex, got {txid!r}")
    return COutPoint(h, n)


# Opcode names as shown to users; the soft-fork NOPs get their real names.
_DISPLAY_NAMES = {
    script.OP_NOP3: "OP_CHECKSEQUENCEVERIFY",
    script.OP_NOP4: "OP_CHECKTEMPLATEVERIFY",
}


def script_asm(s: CScript) -> str:
    """Space separated disassembly, pushes in hex."""
    parts = []
    for opcode, data, _ in s.raw_iter():
        if data is not None and opcode != script.OP_0:
            parts.append(data.hex())
        elif opcode == script.OP_0:
            parts.append("0")
        elif script.OP_1 <= opcode <= script.OP_16:
            parts.append(str(opcode - script.OP_1 + 1))
        else:
            parts.append(
                _DISPLAY_NAMES.get(opcode) or script.OPCODE_NAMES.get(opcode, "OP_UNKNOWN")
            )
    return " ".join(parts)


def colorize(asm: str) -> str:
    """Highlight opcodes in red and 32-byte hashes in green."""
    asm = re.sub(r"(OP_\w+)", lambda m: red(m.group(1)), asm)
    return re.sub(r"\b([0-9a-f]{64})\b", lambda m: green(m.group(1)), asm)


def make_color(start, end: str) -> t.Callable[[str], str]:
    def color_func(s: str) -> str:
        return start + t_(s) + end

    return color_func


def esc(*codes: t.Union[int, str]) -> str:
    """
    Produces an ANSI escape code from a list of integers
    """
    return t_("\x1b[{}m").format(t_(";").join(t_(str(c)) for c in codes))


def t_(b: t.Union[bytes, t.Any]) -> str:
    """ensure text type"""
    if isinstance(b, bytes):
        return b.decode()
    return b


FG_END = esc(39)
red = make_color(esc(31), FG_END)
green = make_color(esc(32), FG_END)
yellow = make_color(esc(33), FG_END)
bold = make_color(esc(1), esc(22))


def no_output(*args, **kwargs):
    pass
