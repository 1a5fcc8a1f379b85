"""Minimal Microsoft Graph client for the signed-in user's profile and photo.

The access token is a delegated token from the user's MSAL cache; sign-in and
token refresh are handled in app.py.
"""

import base64
import logging
from typing import Any, Dict, Optional, Tuple

import requests

from exceptions import TransportError

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"


class GraphClient:
    """Thin wrapper over the two /me endpoints used by the Graph page."""

    def __init__(self, access_token: str, endpoint: str = DEFAULT_GRAPH_ENDPOINT, timeout: float = 10):
        self.base = endpoint.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {access_token}"})

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "GraphClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def get_me(self) -> Dict[str, Any]:
        """Return the signed-in user's profile."""
        try:
            r = self.session.get(f"{self.base}/me", headers={"Accept": "application/json"}, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Graph GET /me failed: {e}") from e
        if not r.ok:
            raise TransportError(f"Graph GET /me failed {r.status_code}: {r.text}")
        try:
            return r.json()
        except ValueError as e:
            # requests' JSONDecodeError is a ValueError
            raise TransportError(f"Graph GET /me returned a non-JSON body: {e}") from e

    def get_photo(self) -> Optional[bytes]:
        """Return the user's photo bytes, or None when the user has no photo."""
        try:
            r = self.session.get(f"{self.base}/me/photo/$value", timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Graph GET /me/photo failed: {e}") from e
        if r.status_code == 404:
            return None
        if not r.ok:
            raise TransportError(f"Graph GET /me/photo failed {r.status_code}: {r.text}")
        return r.content or None


def fetch_profile(client: GraphClient) -> Tuple[Dict[str, Any], Optional[str]]:
    """Fetch display name and base64 photo.

    Returns (profile, error). Photo problems never produce an error; the photo
    simply comes back as None.
    """
    profile: Dict[str, Any] = {"display_name": None, "photo_base64": None, "me": None}
    try:
        me = client.get_me()
    except TransportError as e:
        logger.error("Could not load profile: %s", e)
        return profile, str(e)
    profile["me"] = me
    profile["display_name"] = me.get("displayName")

    try:
        photo = client.get_photo()
    except TransportError as e:
        logger.warning("Could not load profile photo: %s", e)
        photo = None
    if photo:
        profile["photo_base64"] = base64.b64encode(photo).decode("ascii")
    return profile, None
