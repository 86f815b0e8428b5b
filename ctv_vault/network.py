"""
Network selection and address handling.

Addresses are checked against the parameters of one explicit network rather
than the process-wide `bitcoin.params`, so callers on different networks
never step on each other.
"""
import typing as t

from bitcoin import MainParams, TestNetParams, RegTestParams
from bitcoin import segwit_addr
from bitcoin.base58 import CBase58Data, Base58Error
from bitcoin.core import CScript
from bitcoin.core import script
from buidl.bech32 import BECH32_ALPHABET, bech32m_verify_checksum, uses_only_bech32_chars

from .errors import InvalidAddressForNetwork, UnknownNetwork
from .utils import sha256

NETWORKS = {
    "mainnet": MainParams,
    "testnet": TestNetParams,
    # Signet shares testnet's address encodings.
    "signet": TestNetParams,
    "regtest": RegTestParams,
}

ALIASES = {"bitcoin": "mainnet"}


def parse_network(name: str) -> str:
    """Return the canonical network name, raising `UnknownNetwork` otherwise."""
    key = ALIASES.get(str(name).lower(), str(name).lower())
    if key not in NETWORKS:
        raise UnknownNetwork(
            f"Unknown network {name!r} (expected one of {', '.join(NETWORKS)})"
        )
    return key


def decode_segwit(hrp: str, address: str) -> t.Tuple[t.Optional[int], t.Optional[bytes]]:
    """
    Witness version and program of a segwit `address` under `hrp`, or
    `(None, None)`.

    Version 0 must carry a bech32 checksum (BIP-173), versions 1 to 16 a
    bech32m one (BIP-350).
    """
    witver, witprog = segwit_addr.decode(hrp, address)
    if witver is not None:
        if witver != 0:
            return None, None
        return witver, bytes(witprog)

    if address.lower() != address and address.upper() != address:
        return None, None
    address = address.lower()
    pos = address.rfind("1")
    if pos < 1 or address[:pos] != hrp or pos + 7 > len(address) or len(address) > 90:
        return None, None
    if not uses_only_bech32_chars(address[pos + 1 :]):
        return None, None

    data = [BECH32_ALPHABET.index(c) for c in address[pos + 1 :]]
    if not bech32m_verify_checksum(hrp, data):
        return None, None
    witver = data[0]
    witprog = segwit_addr.convertbits(data[1:-6], 5, 8, False)
    if not 1 <= witver <= 16 or witprog is None or not 2 <= len(witprog) <= 40:
        return None, None
    return witver, bytes(witprog)


def address_to_script_pubkey(address: str, network: str) -> CScript:
    """
    Validate `address` for `network` and return its standard output script.

    Raises `InvalidAddressForNetwork` for anything that does not decode under
    that network's bech32 HRP or base58 prefixes.
    """
    params = NETWORKS[parse_network(network)]

    witver, witprog = decode_segwit(params.BECH32_HRP, address)
    if witver is not None:
        return CScript([script.CScriptOp.encode_op_n(witver), bytes(witprog)])

    try:
        data = CBase58Data(address)
    except (Base58Error, IndexError):
        raise InvalidAddressForNetwork(address, network)

    if len(data) == 20:
        if data.nVersion == params.BASE58_PREFIXES["PUBKEY_ADDR"]:
            return CScript(
                [
                    script.OP_DUP,
                    script.OP_HASH160,
                    bytes(data),
                    script.OP_EQUALVERIFY,
                    script.OP_CHECKSIG,
                ]
            )
        if data.nVersion == params.BASE58_PREFIXES["SCRIPT_ADDR"]:
            return CScript([script.OP_HASH160, bytes(data), script.OP_EQUAL])
    raise InvalidAddressForNetwork(address, network)


def p2wsh_script_pubkey(witness_script: CScript) -> CScript:
    return CScript([script.OP_0, sha256(witness_script)])


def p2wsh_address(witness_script: CScript, network: str) -> str:
    """Bech32 P2WSH address paying to `witness_script` on `network`."""
    params = NETWORKS[parse_network(network)]
    return segwit_addr.encode(params.BECH32_HRP, 0, sha256(witness_script))
