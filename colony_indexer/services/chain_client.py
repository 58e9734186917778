"""
Chain gateway: read-only calls against the colony network contracts.

Every remote failure is re-raised as ``TransportError`` so call sites can
decide whether a missing answer is fatal or just "no data this round".
"""
from typing import Any, Dict, List, Optional, Tuple

from web3 import Web3

from colony_indexer.data_models.schemas import ColonyClientInfo, DomainResolution
from colony_indexer.exceptions import ColonyNotFoundError, TransportError
from colony_indexer.utils.addresses import is_zero_address, to_checksum
from colony_indexer.utils.logger import logger


def _fn(name: str, inputs: List[Tuple[str, str]], outputs: List[Tuple[str, str]]) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


COLONY_NETWORK_ABI = [
    _fn("getColonyCount", [], [("", "uint256")]),
    _fn("getColony", [("_id", "uint256")], [("", "address")]),
    _fn("getExtensionInstallation", [("_extensionId", "bytes32"), ("_colony", "address")], [("", "address")]),
    _fn("lookupRegisteredENSDomain", [("_addr", "address")], [("", "string")]),
]

COLONY_ABI = [
    _fn("getToken", [], [("", "address")]),
    _fn("version", [], [("", "uint256")]),
    _fn("getDomainCount", [], [("", "uint256")]),
    {
        **_fn("getDomain", [("_id", "uint256")], []),
        "outputs": [{
            "name": "domain",
            "type": "tuple",
            "components": [
                {"name": "skillId", "type": "uint256"},
                {"name": "fundingPotId", "type": "uint256"},
            ],
        }],
    },
    _fn("getDomainFromFundingPot", [("_fundingPotId", "uint256")], [("", "uint256")]),
]

ERC20_ABI = [
    _fn("name", [], [("", "string")]),
    _fn("symbol", [], [("", "string")]),
    _fn("decimals", [], [("", "uint8")]),
]

# Extensions the indexer looks for on every colony
KNOWN_EXTENSIONS = (
    "OneTxPayment",
    "VotingReputation",
    "CoinMachine",
    "Whitelist",
    "FundingQueue",
    "StakedExpenditure",
    "StreamingPayments",
)


def extension_hash(extension_name: str) -> str:
    return Web3.to_hex(Web3.keccak(text=extension_name))


class ChainClient:
    """
    Read-only colony network client.

    Provides methods to:
    - Count colonies and load a colony's token / version / domain count
    - Look up installed extensions and ENS names
    - Resolve domains from ids, funding pots and skills
    - Fetch transaction senders and token details
    """

    def __init__(
        self,
        rpc_endpoint: str,
        network_address: str,
        timeout: float = 30.0,
        web3: Optional[Web3] = None,
    ):
        """
        Initialize the chain client.

        Args:
            rpc_endpoint: JSON-RPC URL
            network_address: Colony network contract address
            timeout: Request timeout in seconds
            web3: Pre-built Web3 instance (tests inject one)
        """
        self.w3 = web3 or Web3(Web3.HTTPProvider(rpc_endpoint, request_kwargs={"timeout": timeout}))
        self.network = self.w3.eth.contract(
            address=Web3.to_checksum_address(network_address),
            abi=COLONY_NETWORK_ABI,
        )

    def _colony(self, colony_address: str):
        return self.w3.eth.contract(address=Web3.to_checksum_address(colony_address), abi=COLONY_ABI)

    def _call(self, label: str, fn, *args, block_identifier=None):
        try:
            if block_identifier is not None:
                return fn(*args).call(block_identifier=block_identifier)
            return fn(*args).call()
        except Exception as e:
            logger.error("[ChainClient] %s failed: %s", label, e)
            raise TransportError(str(e), gateway=f"chain:{label}") from e

    def get_block_number(self) -> int:
        try:
            return int(self.w3.eth.block_number)
        except Exception as e:
            logger.error("[ChainClient] block_number failed: %s", e)
            raise TransportError(str(e), gateway="chain:block_number") from e

    def get_colony_count(self) -> int:
        return int(self._call("getColonyCount", self.network.functions.getColonyCount))

    def get_colony_client(self, colony_id: int) -> ColonyClientInfo:
        """Load the chain view of one colony.

        Raises:
            ColonyNotFoundError: If the network has no colony under that id
            TransportError: If any call fails
        """
        address = self._call("getColony", self.network.functions.getColony, colony_id)
        if not address or is_zero_address(address):
            raise ColonyNotFoundError(f"#{colony_id}")
        colony = self._colony(address)
        token_address = self._call("getToken", colony.functions.getToken)
        version = self._call("version", colony.functions.version)
        domain_count = self._call("getDomainCount", colony.functions.getDomainCount)
        return ColonyClientInfo(
            chain_id=colony_id,
            address=Web3.to_checksum_address(address),
            token_address=Web3.to_checksum_address(token_address),
            version=int(version),
            domain_count=int(domain_count),
        )

    def lookup_registered_ens_domain(self, address: str) -> Optional[str]:
        name = self._call(
            "lookupRegisteredENSDomain",
            self.network.functions.lookupRegisteredENSDomain,
            Web3.to_checksum_address(address),
        )
        return name or None

    def get_extension_installation(self, extension_name: str, colony_address: str) -> Optional[str]:
        """Installed extension address, or None when the slot holds the zero address."""
        address = self._call(
            "getExtensionInstallation",
            self.network.functions.getExtensionInstallation,
            Web3.keccak(text=extension_name),
            Web3.to_checksum_address(colony_address),
        )
        if not address or is_zero_address(address):
            return None
        return to_checksum(address)

    def resolve_domain(self, colony_address: str, domain_id: int) -> DomainResolution:
        skill_id, funding_pot_id = self._call(
            "getDomain", self._colony(colony_address).functions.getDomain, domain_id,
        )
        return DomainResolution(skill_id=int(skill_id), funding_pot_id=int(funding_pot_id))

    def resolve_domain_from_funding_pot(self, colony_address: str, pot_id: int) -> Optional[int]:
        domain_id = self._call(
            "getDomainFromFundingPot",
            self._colony(colony_address).functions.getDomainFromFundingPot,
            pot_id,
        )
        domain_id = int(domain_id)
        return domain_id or None

    def get_transaction_receipt(self, transaction_hash: str) -> Dict[str, Any]:
        try:
            receipt = self.w3.eth.get_transaction_receipt(transaction_hash)
        except Exception as e:
            logger.error("[ChainClient] receipt for %s failed: %s", transaction_hash, e)
            raise TransportError(str(e), gateway="chain:receipt") from e
        return {"from": to_checksum(receipt["from"])}

    def estimate_gas(self, call: Dict[str, Any]) -> bool:
        """Capability probe: True if the node would accept the call."""
        try:
            self.w3.eth.estimate_gas(call)
            return True
        except Exception as e:
            logger.debug("[ChainClient] estimate_gas probe failed: %s", e)
            return False

    def get_token_details(self, token_address: str) -> Tuple[str, str, int]:
        token = self.w3.eth.contract(address=Web3.to_checksum_address(token_address), abi=ERC20_ABI)
        name = self._call("token.name", token.functions.name)
        symbol = self._call("token.symbol", token.functions.symbol)
        decimals = self._call("token.decimals", token.functions.decimals)
        return name, symbol, int(decimals)
