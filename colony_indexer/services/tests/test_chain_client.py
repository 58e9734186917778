"""Unit tests for the chain gateway, with web3 mocked out."""
import pytest
from unittest.mock import MagicMock

from web3 import Web3

from colony_indexer.config.indexer_settings import ZERO_ADDRESS
from colony_indexer.exceptions import ColonyNotFoundError, TransportError
from colony_indexer.services.chain_client import (
    COLONY_ABI,
    COLONY_NETWORK_ABI,
    ERC20_ABI,
    ChainClient,
    extension_hash,
)

NETWORK = Web3.to_checksum_address("0x" + "1" * 40)
COLONY = Web3.to_checksum_address("0x" + "c" * 40)
TOKEN = Web3.to_checksum_address("0x" + "e" * 40)


def returns(contract, name, value):
    getattr(contract.functions, name).return_value.call.return_value = value


class TestChainClient:
    """Contract reads."""

    def setup_method(self):
        self.network = MagicMock()
        self.colony = MagicMock()
        self.token = MagicMock()
        contracts = {id(COLONY_NETWORK_ABI): self.network, id(COLONY_ABI): self.colony, id(ERC20_ABI): self.token}
        self.w3 = MagicMock()
        self.w3.eth.contract.side_effect = lambda address, abi: contracts[id(abi)]
        self.client = ChainClient("http://rpc.test", NETWORK, web3=self.w3)

    def test_get_colony_client(self):
        returns(self.network, "getColony", COLONY.lower())
        returns(self.colony, "getToken", TOKEN)
        returns(self.colony, "version", 9)
        returns(self.colony, "getDomainCount", 3)

        info = self.client.get_colony_client(2)

        assert info.chain_id == 2
        assert info.address == COLONY
        assert info.token_address == TOKEN
        assert (info.version, info.domain_count) == (9, 3)

    def test_missing_colony(self):
        returns(self.network, "getColony", ZERO_ADDRESS)
        with pytest.raises(ColonyNotFoundError):
            self.client.get_colony_client(99)

    def test_call_failures_become_transport_errors(self):
        self.network.functions.getColonyCount.return_value.call.side_effect = ValueError("execution reverted")
        with pytest.raises(TransportError) as exc_info:
            self.client.get_colony_count()
        assert exc_info.value.gateway == "chain:getColonyCount"

    def test_uninstalled_extension(self):
        returns(self.network, "getExtensionInstallation", ZERO_ADDRESS)
        assert self.client.get_extension_installation("OneTxPayment", COLONY) is None

    def test_installed_extension(self):
        extension = "0x" + "f" * 40
        returns(self.network, "getExtensionInstallation", extension)
        assert self.client.get_extension_installation("OneTxPayment", COLONY) == Web3.to_checksum_address(extension)

    def test_resolve_domain(self):
        returns(self.colony, "getDomain", (12, 3))
        resolution = self.client.resolve_domain(COLONY, 2)
        assert (resolution.skill_id, resolution.funding_pot_id) == (12, 3)

    def test_funding_pot_without_domain(self):
        returns(self.colony, "getDomainFromFundingPot", 0)
        assert self.client.resolve_domain_from_funding_pot(COLONY, 44) is None

    def test_token_details(self):
        returns(self.token, "name", "Colony Token")
        returns(self.token, "symbol", "CLNY")
        returns(self.token, "decimals", 18)
        assert self.client.get_token_details(TOKEN) == ("Colony Token", "CLNY", 18)

    def test_receipt_sender(self):
        self.w3.eth.get_transaction_receipt.return_value = {"from": COLONY.lower()}
        assert self.client.get_transaction_receipt("0xtx") == {"from": COLONY}

    def test_estimate_gas_probe(self):
        self.w3.eth.estimate_gas.side_effect = ValueError("revert")
        assert self.client.estimate_gas({"to": COLONY}) is False

    def test_extension_hash(self):
        value = extension_hash("OneTxPayment")
        assert value.startswith("0x")
        assert len(value) == 66
        assert value == extension_hash("OneTxPayment")
