"""Block explorer queries used to tell when a deployment has been indexed."""

import os
from typing import Optional

import requests
from ape.logging import logger

from rollout.constants import ETHERSCAN_API_KEY_ENVVAR, ETHERSCAN_V2_API_URL
from rollout.waiter import Indexer


class EtherscanIndexer(Indexer):
    """Asks the Etherscan v2 multichain API whether it knows a contract's creation."""

    def __init__(self, api_key: str, chain_id: int, url: str = ETHERSCAN_V2_API_URL, timeout=10):
        if not api_key:
            raise ValueError("Etherscan API key is empty")
        self.api_key = api_key
        self.chain_id = chain_id
        self.url = url
        self.timeout = timeout

    @classmethod
    def from_environment(cls, chain_id: int) -> Optional["EtherscanIndexer"]:
        """Returns an indexer if an API key is configured, otherwise None."""
        api_key = os.environ.get(ETHERSCAN_API_KEY_ENVVAR)
        if not api_key:
            return None
        return cls(api_key=api_key, chain_id=chain_id)

    def is_indexed(self, address: str) -> bool:
        params = {
            "chainid": self.chain_id,
            "module": "contract",
            "action": "getcontractcreation",
            "contractaddresses": address,
            "apikey": self.api_key,
        }
        try:
            response = requests.get(self.url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            # treated as "not yet"; the caller bounds the polling
            logger.debug(f"Indexer query for {address} failed: {e}")
            return False

        return data.get("status") == "1" and bool(data.get("result"))
