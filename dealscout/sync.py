"""Dispatch outbox entries to the remote entity-status API."""

from typing import Optional

import requests

from .logger import get_logger
from .retry import RetryError, exponential_backoff, should_retry_http_status
from .schema import ensure_entity_id, ensure_sync_action

logger = get_logger()

TYPE_PATHS = {
    "person": "people",
    "talent_signal": "people",
    "company": "company",
}


class SyncDispatchError(Exception):
    """Raised when the remote refuses or cannot be reached.

    transient tells the outbox whether another attempt may succeed.
    """

    def __init__(self, message: str, transient: bool, status: Optional[int] = None):
        super().__init__(message)
        self.transient = transient
        self.status = status


def status_body(action: str) -> dict:
    """Request body for an action. Like/dislike always send both flags."""
    ensure_sync_action(action)
    if action == "viewed":
        return {"viewed": True}
    return {"liked": action == "like", "disliked": action == "dislike"}


def type_path(entity_type: str) -> str:
    try:
        return TYPE_PATHS[entity_type]
    except KeyError:
        raise SyncDispatchError(f"No remote path for entity type '{entity_type}'", transient=False)


class EntityStatusClient:
    """POSTs like/dislike/viewed status for one entity per call."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        base_delay: float = 0.5,
        session: Optional[requests.Session] = None,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if api_key:
            self.session.headers.update({"Authorization": f"Bearer {api_key}"})
        self._post = exponential_backoff(
            max_retries=max_retries,
            base_delay=base_delay,
            exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError),
        )(self._post_once)

    def url_for(self, entity_type: str, entity_id: str) -> str:
        ensure_entity_id(entity_id)
        return f"{self.base_url}/entity-status/{type_path(entity_type)}/{entity_id}"

    def _post_once(self, url: str, body: dict):
        return self.session.post(url, json=body, timeout=self.timeout)

    def post_status(self, entity_type: str, entity_id: str, action: str) -> None:
        """Send one status update.

        Raises:
            SyncDispatchError: On HTTP error, timeout, or request failure
        """
        url = self.url_for(entity_type, entity_id)
        body = status_body(action)
        try:
            resp = self._post(url, body)
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            transient = status is None or should_retry_http_status(status)
            logger.warning("Entity status rejected", url=url, status=status)
            raise SyncDispatchError(f"Entity status request failed ({status}): {url}", transient, status)
        except RetryError as e:
            logger.warning("Entity status unreachable", url=url, error=str(e))
            raise SyncDispatchError(f"Entity status request timed out or could not connect: {url}", True)
        except requests.exceptions.RequestException as e:
            logger.error("Entity status request error", url=url, error=str(e))
            raise SyncDispatchError(f"Entity status request error: {e}", False)

        logger.debug("Entity status sent", url=url, action=action)

    __call__ = post_status
