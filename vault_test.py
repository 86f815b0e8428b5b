import pytest

from bitcoin.core import CScript
from bitcoin.core import script

from ctv_vault.constants import VAULT_FEE
from ctv_vault.errors import (
    InvalidAddressForNetwork,
    InvalidAmount,
    InvalidDelay,
    SerializationFailure,
    UnknownNetwork,
)
from ctv_vault.network import address_to_script_pubkey, p2wsh_script_pubkey
from ctv_vault.utils import (
    get_standard_template_hash,
    script_asm,
    colorize,
    red,
    green,
)
from ctv_vault.vault import Vault, leaf_ctv, vault_locking_script

FUNDING_TXID = "bb" * 32
UNVAULT_TXID = "cc" * 32


@pytest.fixture
def vault(hot_address, cold_address) -> Vault:
    return Vault(hot=hot_address, cold=cold_address, amount=100_000, delay=10, network="regtest")


def test_fee_accounting(vault):
    assert vault.hot_ctv().outputs[0].amount == vault.amount - VAULT_FEE
    assert vault.cold_ctv().outputs[0].amount == vault.amount - VAULT_FEE
    assert vault.hot_ctv().outputs[0].address == vault.hot
    assert vault.cold_ctv().outputs[0].address == vault.cold


@pytest.mark.parametrize("amount", [0, 1, VAULT_FEE, -5])
def test_amount_must_cover_fee(hot_address, cold_address, amount):
    with pytest.raises(InvalidAmount):
        Vault(hot=hot_address, cold=cold_address, amount=amount, delay=10, network="regtest")
    with pytest.raises(InvalidAmount):
        leaf_ctv(hot_address, "regtest", amount)


def test_branches_commit_to_different_templates(vault, hot_address):
    assert vault.hot_ctv().ctv() != vault.cold_ctv().ctv()

    same = Vault(hot=hot_address, cold=hot_address, amount=50_000, delay=3, network="regtest")
    assert same.hot_ctv().ctv() != same.cold_ctv().ctv()

    richer = Vault(vault.hot, vault.cold, vault.amount + 1, vault.delay, vault.network)
    assert richer.hot_ctv().ctv() != vault.hot_ctv().ctv()
    assert richer.cold_ctv().ctv() != vault.cold_ctv().ctv()


def test_hot_template_waits_for_delay(vault):
    assert vault.hot_ctv().sequences == (vault.delay,)
    assert vault.cold_ctv().sequences == (0,)
    assert vault.hot_ctv().version == 2


def test_locking_script_layout(vault):
    hot_hash = vault.hot_ctv().ctv()
    cold_hash = vault.cold_ctv().ctv()
    s = vault.locking_script()

    assert s == CScript(
        [
            script.OP_IF, 10, script.OP_CHECKSEQUENCEVERIFY, script.OP_DROP,
            hot_hash, script.OP_NOP4,
            script.OP_ELSE,
            cold_hash, script.OP_NOP4,
            script.OP_ENDIF,
        ]
    )
    assert script_asm(s) == (
        f"OP_IF 10 OP_CHECKSEQUENCEVERIFY OP_DROP {hot_hash.hex()} OP_CHECKTEMPLATEVERIFY "
        f"OP_ELSE {cold_hash.hex()} OP_CHECKTEMPLATEVERIFY OP_ENDIF"
    )
    assert s == vault_locking_script(10, vault.cold, vault.hot, "regtest", 100_000)


def test_vault_address_is_p2wsh_of_script(vault):
    address = vault.vault_address()
    assert address.startswith("bcrt1q")
    assert address_to_script_pubkey(address, "regtest") == p2wsh_script_pubkey(
        vault.locking_script()
    )


def test_vault_is_deterministic(vault):
    twin = Vault(vault.hot, vault.cold, vault.amount, vault.delay, vault.network)
    assert twin == vault
    assert twin.vault_address() == vault.vault_address()
    assert twin.hot_ctv() == vault.hot_ctv()
    assert twin.cold_ctv().ctv() == vault.cold_ctv().ctv()


def test_vault_json_round_trip(vault):
    text = vault.to_json()
    again = Vault.from_json(text)
    assert again == vault
    assert again.vault_address() == vault.vault_address()


def test_vault_json_failures():
    with pytest.raises(SerializationFailure):
        Vault.from_json('{"hot": "x"}')
    with pytest.raises(SerializationFailure):
        Vault.from_json('{"hot": "x", "cold": "y", "amount": 1000, "delay": 0, "network": "regtest"}')
    with pytest.raises(SerializationFailure):
        Vault.from_json("nope")


def test_wrong_network_addresses(hot_address, cold_address):
    v = Vault(hot=hot_address, cold=cold_address, amount=100_000, delay=10, network="mainnet")
    with pytest.raises(InvalidAddressForNetwork):
        v.vault_address()


def test_from_request(hot_address, cold_address):
    v = Vault.from_request(f" {hot_address} ", cold_address, "25000", "144", "regtest")
    assert v.amount == 25_000
    assert v.delay == 144
    assert v.hot == hot_address


@pytest.mark.parametrize(
    "hot, amount, delay, network, error",
    [
        ("garbage", 25_000, 10, "regtest", InvalidAddressForNetwork),
        ("bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4", 25_000, 10, "regtest", InvalidAddressForNetwork),
        (None, 0, 10, "regtest", InvalidAmount),
        (None, "-3", 10, "regtest", InvalidAmount),
        (None, "lots", 10, "regtest", InvalidAmount),
        (None, 25_000, 0, "regtest", InvalidDelay),
        (None, 25_000, 70_000, "regtest", InvalidDelay),
        (None, 25_000, "soon", "regtest", InvalidDelay),
        (None, 25_000, 10, "moonnet", UnknownNetwork),
    ],
)
def test_from_request_rejects(hot_address, cold_address, hot, amount, delay, network, error):
    with pytest.raises(error):
        Vault.from_request(hot or hot_address, cold_address, amount, delay, network)


@pytest.mark.parametrize(
    "amount, delay, error",
    [
        (1000.9, 10, InvalidAmount),
        ("25000.5", 10, InvalidAmount),
        ("1e5", 10, InvalidAmount),
        (True, 10, InvalidAmount),
        (25_000, 10.7, InvalidDelay),
        (25_000, "144.0", InvalidDelay),
    ],
)
def test_from_request_rejects_fractions(hot_address, cold_address, amount, delay, error):
    with pytest.raises(error):
        Vault.from_request(hot_address, cold_address, amount, delay, "regtest")


def test_from_request_fractional_input_is_not_truncated(hot_address, cold_address):
    with pytest.raises(InvalidAmount):
        Vault.from_request(hot_address, cold_address, 1000.9, 10.7, "regtest")
    v = Vault.from_request(hot_address, cold_address, 1000.0, " 10 ", "regtest")
    assert (v.amount, v.delay) == (1000, 10)


def test_unvault_tx(vault):
    tx = vault.unvault_tx(FUNDING_TXID, 1)
    vault_ctv = vault.vault_ctv()

    assert tx.vin[0].prevout.n == 1
    assert tx.vout[0].nValue == vault.amount
    assert tx.vout[0].scriptPubKey == p2wsh_script_pubkey(vault.locking_script())
    assert tx.wit.vtxinwit[0].scriptWitness.stack[0] == vault_ctv.locking_script()
    assert get_standard_template_hash(tx, 0) == vault_ctv.ctv()


def test_branch_transactions(vault):
    hot_tx = vault.hot_tx(UNVAULT_TXID, 0)
    cold_tx = vault.cold_tx(UNVAULT_TXID, 0)

    assert hot_tx.vin[0].nSequence == vault.delay
    assert list(hot_tx.wit.vtxinwit[0].scriptWitness.stack) == [b"\x01", vault.locking_script()]
    assert list(cold_tx.wit.vtxinwit[0].scriptWitness.stack) == [b"", vault.locking_script()]

    # Each sweep satisfies the hash committed to in its branch.
    assert get_standard_template_hash(hot_tx, 0) == vault.hot_ctv().ctv()
    assert get_standard_template_hash(cold_tx, 0) == vault.cold_ctv().ctv()


def test_leaf_spending_chains(vault):
    for template in (vault.hot_ctv(), vault.cold_ctv()):
        chain = template.spending_tx(UNVAULT_TXID, 0)
        assert len(chain) == 1
        assert chain[0].vout[0].nValue == vault.amount - VAULT_FEE


def test_colorized_script(vault):
    hot_hash = vault.hot_ctv().ctv().hex()
    shown = vault.colorized_script()
    assert red("OP_CHECKTEMPLATEVERIFY") in shown
    assert green(hot_hash) in shown
    assert colorize("OP_IF " + "ab" * 32) == red("OP_IF") + " " + green("ab" * 32)
