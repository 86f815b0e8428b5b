"""
Build BIP-119 (OP_CHECKTEMPLATEVERIFY) vaults and the transactions that move
their coins. Nothing is signed or broadcast; every transaction is printed as
raw hex.

Example usage:

  # Create a vault. stderr shows the vault address and the funding address
  # whose coin `unvault` moves into the vault
  VAULT=$(ctv-vault lock $HOT $COLD 100000 144 --network regtest)

  # Unvault the coin sent to the funding address
  ctv-vault unvault "$VAULT" $FUNDING_TXID 0

  # Sweep the unvaulted coin to the hot (after the delay) or cold wallet
  ctv-vault spend "$VAULT" $UNVAULT_TXID 0

"""
import sys
import typing as t

from clii import App
from bitcoin.core import CTransaction

from .constants import DEFAULT_NETWORK, TxidStr, RawTxStr
from .errors import CtvError
from .models import Ctv
from .utils import bold, yellow, green, red, bytes_to_txid, no_output
from .vault import Vault

cli = App(usage=__doc__)


def _stderr(*args, **kwargs):
    print(*args, file=sys.stderr, **kwargs)


log: t.Callable = no_output


def _tx_hex(tx: CTransaction) -> RawTxStr:
    return tx.serialize().hex()


def _log_tx(title: str, tx: CTransaction) -> RawTxStr:
    hx = _tx_hex(tx)
    log(bold(f"\n## {title} {yellow(bytes_to_txid(tx.GetTxid()))}"))
    log(f"{tx}")
    log()
    return hx


def _fail(e: Exception):
    log(bold(red(f"!!! {e}")))
    sys.exit(1)


def _cli_lock(hot: str, cold: str, amount: int, delay: int, network: str) -> t.Tuple[Vault, str]:
    vault = Vault.from_request(hot, cold, amount, delay, network)
    return vault, vault.vault_address()


def _cli_unvault(vault_json: str, txid: TxidStr, vout: int) -> CTransaction:
    return Vault.from_json(vault_json).unvault_tx(txid, vout)


def _cli_spend(vault_json: str, txid: TxidStr, vout: int) -> t.Tuple[CTransaction, CTransaction]:
    vault = Vault.from_json(vault_json)
    return vault.hot_tx(txid, vout), vault.cold_tx(txid, vout)


def _cli_chain(template_json: str, txid: TxidStr, vout: int) -> t.List[CTransaction]:
    return Ctv.from_json(template_json).spending_tx(txid, vout)


@cli.cmd
def lock(hot: str, cold: str, amount: int, delay: int, network: str = DEFAULT_NETWORK):
    """
    Create a vault. Prints the vault token, which the later commands need,
    on stdout. The vault address and the funding address that `unvault`
    spends from go to stderr.

    Args:
        hot: address receiving the coins after `delay` blocks.
        cold: address that can sweep the coins at any time.
        amount: vault amount in sats, including the 600 sat sweep fee.
        delay: relative delay of the hot path, in blocks.
    """
    try:
        vault, address = _cli_lock(hot, cold, amount, delay, network)
    except CtvError as e:
        _fail(e)

    log(bold("# Vault created\n"))
    log(f"Deposit {bold(f'{vault.amount} sats')} to {green(address)}")
    log(f"Fund the unvault transaction at {green(vault.vault_ctv().address())}")
    log(f"Hot path: {bold(vault.hot_ctv().ctv().hex())}")
    log(f"Cold path: {bold(vault.cold_ctv().ctv().hex())}")
    print(vault.to_json())


@cli.cmd
def unvault(vault: str, txid: TxidStr, vout: int):
    """
    Print the transaction that moves the coin at `txid:vout` into the vault
    script.
    """
    try:
        tx = _cli_unvault(vault, txid, vout)
    except (CtvError, ValueError) as e:
        _fail(e)
    print(_log_tx("Unvault transaction", tx))


@cli.cmd
def spend(vault: str, txid: TxidStr, vout: int):
    """
    Print the hot and cold sweeps of the vault output at `txid:vout`.
    """
    try:
        hot_tx, cold_tx = _cli_spend(vault, txid, vout)
    except (CtvError, ValueError) as e:
        _fail(e)
    print(_log_tx("To hot", hot_tx))
    print(_log_tx("To cold", cold_tx))


@cli.cmd
def chain(template: str, txid: TxidStr, vout: int):
    """
    Print every transaction of a template's spending chain, in broadcast order.
    """
    try:
        txs = _cli_chain(template, txid, vout)
    except (CtvError, ValueError) as e:
        _fail(e)
    for i, tx in enumerate(txs):
        print(_log_tx(f"Step {i}", tx))


@cli.cmd
def template_hash(template: str):
    """Print the CTV hash of a template."""
    try:
        print(Ctv.from_json(template).ctv().hex())
    except CtvError as e:
        _fail(e)


@cli.cmd
def show_script(vault: str):
    """Print the vault's witness script."""
    try:
        print(Vault.from_json(vault).colorized_script())
    except CtvError as e:
        _fail(e)


def main():
    global log
    log = _stderr
    cli.run()


if __name__ == "__main__":
    main()
