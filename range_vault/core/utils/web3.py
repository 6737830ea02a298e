from contextlib import asynccontextmanager

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.middleware import ExtraDataToPOAMiddleware

from range_vault.core.config import get_rpc_urls
from range_vault.core.constants.chains import POA_MIDDLEWARE_CHAIN_IDS


def _get_rpcs_for_chain_id(chain_id: int) -> list:
    mapping = get_rpc_urls()
    rpcs = mapping.get(str(chain_id))
    if rpcs is None:
        rpcs = mapping.get(chain_id)  # allow int keys
    if rpcs is None:
        raise ValueError(f"No RPCs configured for chain ID {chain_id}")
    if isinstance(rpcs, str):
        return [rpcs]
    return rpcs


def _get_web3(rpc: str, chain_id: int) -> AsyncWeb3:
    provider = AsyncHTTPProvider(
        rpc, request_kwargs={"headers": AsyncHTTPProvider.get_request_headers()}
    )
    web3 = AsyncWeb3(provider)
    if chain_id in POA_MIDDLEWARE_CHAIN_IDS:
        web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return web3


@asynccontextmanager
async def web3_from_chain_id(chain_id: int):
    # only the first configured rpc is used
    web3 = _get_web3(_get_rpcs_for_chain_id(chain_id)[0], chain_id)
    try:
        yield web3
    finally:
        await web3.provider.disconnect()
