import pytest
from bitcoin import segwit_addr
from bitcoin import RegTestParams
from buidl.hd import HDPrivateKey


def wallet_address(seed: bytes) -> str:
    """
    Deterministic regtest P2WPKH address, derived like the demo wallets.

    buidl has no regtest parameters, so the key comes from a testnet wallet
    and its hash160 is encoded under the regtest HRP.
    """
    key = HDPrivateKey.from_seed(seed, network="testnet").get_private_key(1)
    return segwit_addr.encode(RegTestParams.BECH32_HRP, 0, key.point.hash160())


@pytest.fixture
def hot_address() -> str:
    return wallet_address(b"hot-demo")


@pytest.fixture
def cold_address() -> str:
    return wallet_address(b"cold-demo")
