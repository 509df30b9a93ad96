from web3 import Web3
import logging

logger = logging.getLogger(__name__)

# Seconds an EIP-1271 contract read may take before the RPC call is abandoned.
RPC_TIMEOUT_SECONDS = 10

_providers: dict[str, Web3.HTTPProvider] = {}


def get_provider(rpc_url: str | None) -> Web3.HTTPProvider | None:
    """
    Returns a cached HTTP provider for the chain's RPC URL, or None when no URL
    is configured. Without a provider only EOA signatures can be verified.
    """
    if not rpc_url:
        return None
    if rpc_url not in _providers:
        _providers[rpc_url] = Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": RPC_TIMEOUT_SECONDS})
        logger.info(f"Created Web3 provider for RPC URL: {rpc_url}")
    return _providers[rpc_url]
