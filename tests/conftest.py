"""
IXWALLET Test Suite - Shared Fixtures
"""

from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from ixwallet.config import WalletConfig
from ixwallet.core.client import EthereumClient, IconClient
from ixwallet.core.keys import KeyMaterial
from ixwallet.data.database import WalletStore
from ixwallet.data.price_feed import ExchangeRateFeed
from ixwallet.lifecycle.address_book import AddressBook, TransactionHistory
from ixwallet.lifecycle.manager import WalletLifecycleManager
from ixwallet.logger import WalletLogger
from ixwallet.sync.cache import BalanceCache
from ixwallet.sync.engine import BalanceSyncEngine
from ixwallet.transfer.builder import TransactionBuilder

# Low scrypt work factor keeps keystore tests fast
TEST_SCRYPT_N = 1024


@pytest.fixture
def config(tmp_path):
    """Wallet configuration isolated to a temp directory."""
    return WalletConfig(
        icx_rpc_url="https://icx.test.invalid",
        icx_nid="0x3",
        eth_rpc_url="https://eth.test.invalid",
        eth_chain_id=1,
        db_path=str(tmp_path / "wallets.db"),
        backup_dir=str(tmp_path / "ICONex"),
        currency="usd",
        icx_scrypt_n=TEST_SCRYPT_N,
        eth_scrypt_n=TEST_SCRYPT_N,
        log_file=str(tmp_path / "ixwallet.log"),
    )


@pytest.fixture
def logger(config):
    """Logger instance for tests."""
    return WalletLogger(config)


@pytest.fixture
def store(config):
    store = WalletStore(config.db_path)
    yield store
    store.close()


@pytest.fixture
def keys(config):
    return KeyMaterial(config)


@pytest.fixture
def cache(config):
    cache = BalanceCache(config.in_flight_timeout_seconds)
    cache.init()
    yield cache
    cache.shutdown()


@pytest.fixture
def rates(config):
    return ExchangeRateFeed(config)


@pytest.fixture
def manager(config, store, keys, cache, logger):
    return WalletLifecycleManager(config, store, keys, cache, logger)


@pytest.fixture
def address_book(store, logger):
    return AddressBook(store, logger)


@pytest.fixture
def history(store):
    return TransactionHistory(store)


@pytest.fixture
def icon_client():
    """IconClient with every coroutine replaced by an AsyncMock."""
    client = MagicMock(spec=IconClient)
    client.nid = "0x3"
    return client


@pytest.fixture
def eth_client():
    client = MagicMock(spec=EthereumClient)
    client.chain_id = 1
    return client


@pytest_asyncio.fixture
async def engine(config, cache, icon_client, eth_client, rates, logger, manager):
    engine = BalanceSyncEngine(
        config,
        cache,
        icon_client,
        eth_client,
        rates,
        logger,
        wallet_source=lambda: manager.wallets,
    )
    yield engine
    await engine.stop()


@pytest.fixture
def builder(config, icon_client, eth_client, keys, history, cache, logger):
    return TransactionBuilder(config, icon_client, eth_client, keys, history, cache, logger)
