"""
fetcher.py -- Fetching assets that live behind network roots.

Network roots are only consulted when NETWORK_FETCH is on and no filesystem
root has the asset. Callers run fetch_asset() in a worker thread; it blocks.
"""

import logging

import requests

logger = logging.getLogger("combiner.fetcher")

# Module-level session shared across all fetches for connection pooling.
# max_redirects=3 replaces the requests default of 30 -- asset servers are
# configured explicitly, 3 hops is generous.
_session = requests.Session()
_session.max_redirects = 3

DEFAULT_TIMEOUT = 10


def fetch_asset(url: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """GET url and return the body as text.

    Raises requests.RequestException on connection errors and non-2xx
    answers. Whether that drops the asset or fails the bundle is the
    resolver's call, not ours.
    """
    resp = _session.get(url, timeout=timeout)
    resp.raise_for_status()
    logger.debug("GET %s %d (%d bytes)", url, resp.status_code, len(resp.content))
    return resp.text
