#!/usr/bin/env python3
"""
IXWALLET - Configuration Tests

Run with: pytest tests/test_config.py -v
"""

from ixwallet.config import ChainType, IconNetwork, WalletConfig


class TestWalletConfig:
    """Test configuration defaults and validation."""

    def test_test_config_valid(self, config):
        errors = config.validate()
        assert len(errors) == 0, f"Validation errors: {errors}"

    def test_network_selects_endpoint_and_nid(self, monkeypatch):
        monkeypatch.delenv("ICX_RPC_URL", raising=False)
        monkeypatch.delenv("ICX_NID", raising=False)
        config = WalletConfig(icon_network="yeouido")
        assert config.icon_network == IconNetwork.YEOUIDO
        assert config.icx_rpc_url == "https://bicon.net.solidwallet.io"
        assert config.icx_nid == "0x3"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("ETH_CHAIN_ID", "5")
        monkeypatch.setenv("IXWALLET_CURRENCY", "KRW")
        config = WalletConfig()
        assert config.eth_chain_id == 5
        assert config.currency == "krw"
        assert config.exchange_decimals == 4

    def test_usd_rounds_to_cents(self, config):
        assert config.exchange_decimals == 2

    def test_plain_http_rejected(self, config):
        config.eth_rpc_url = "http://eth.example.com"
        errors = config.validate()
        assert any("HTTPS" in err for err in errors)

    def test_localhost_http_allowed(self, config):
        config.icx_rpc_url = "http://localhost:9000"
        assert config.validate() == []

    def test_bad_nid(self, config):
        config.icx_nid = "3"
        assert any("network id" in err for err in config.validate())

    def test_scrypt_n_power_of_two(self, config):
        config.eth_scrypt_n = 1000
        assert any("scrypt" in err for err in config.validate())

    def test_in_flight_timeout_not_below_rpc_timeout(self, config):
        config.in_flight_timeout_seconds = 1.0
        config.rpc_timeout_seconds = 5.0
        assert any("In-flight" in err for err in config.validate())

    def test_repr_trims_urls(self, config):
        assert "WalletConfig(" in repr(config)


class TestChainType:
    def test_symbols_and_decimals(self):
        assert ChainType.ICX.symbol == "icx"
        assert ChainType.ETH.symbol == "eth"
        assert ChainType.ICX.decimals == 18
        assert ChainType("eth") is ChainType.ETH
