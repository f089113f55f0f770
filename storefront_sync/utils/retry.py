# storefront_sync/utils/retry.py
import time

import requests
from tenacity import Retrying, retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..errors import ProductNotSyncedYet, TransientWriteError


def http_retry(network: bool = True):
    """Retry on transient Sanity statuses, and on dropped connections when ``network``.

    Writes pass network=False: a timed-out mutation may already be applied.
    """
    errors = (TransientWriteError,)
    if network:
        errors += (requests.ConnectionError, requests.Timeout)
    return retry(
        reraise=True,
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=6),
        retry=retry_if_exception_type(errors),
    )


def lookup_retrying(max_retries: int, base_delay: float, sleep=time.sleep, before_sleep=None) -> Retrying:
    """Bounded loop for the price-before-product race.

    One initial attempt plus ``max_retries`` retries, waiting
    base_delay, 2*base_delay, 4*base_delay, ... between them.
    """
    return Retrying(
        reraise=True,
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=base_delay, min=0, max=base_delay * 2 ** max(max_retries - 1, 0)),
        retry=retry_if_exception_type(ProductNotSyncedYet),
        sleep=sleep,
        before_sleep=before_sleep,
    )
