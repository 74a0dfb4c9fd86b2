"""
Slack Web API client.

Thin async wrapper over the handful of Web API methods the sync service
needs. Every call raises SlackApiError when Slack answers ok=false and
SlackTransportError when Slack cannot be reached.
"""

from typing import Dict, Any, Optional, Callable
import logging
import httpx

from ..exceptions import SlackApiError, SlackTransportError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://slack.com/api"

# Error codes meaning the token itself is no longer usable
AUTH_ERROR_CODES = frozenset({
    "invalid_auth",
    "not_authed",
    "token_revoked",
    "token_expired",
    "account_inactive",
})


class SlackApiClient:
    """Slack Web API client bound to a single token."""

    def __init__(self, token: str, base_url: str = DEFAULT_API_BASE_URL, timeout: float = 10.0):
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def api_call(self, method: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Call a Web API method with form-encoded arguments."""
        payload = {key: value for key, value in (data or {}).items() if value is not None}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._base_url}/{method}",
                    headers={"Authorization": f"Bearer {self._token}"},
                    data=payload
                )
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling Slack {method}: {e}")
            raise SlackTransportError(method, str(e)) from e
        except ValueError as e:
            logger.error(f"Invalid JSON from Slack {method}: {e}")
            raise SlackTransportError(method, "invalid JSON response") from e

        if not result.get("ok"):
            error = result.get("error", "unknown_error")
            logger.warning(f"Slack API {method} returned error: {error}")
            raise SlackApiError(method, error, result)

        return result

    async def users_info(self, user_id: str) -> Dict[str, Any]:
        """Fetch a user's profile, flattened to the fields the directory keeps."""
        result = await self.api_call("users.info", {"user": user_id})
        user = result.get("user", {})
        profile = user.get("profile") or {}
        return {
            "id": user.get("id", user_id),
            "name": user.get("name"),
            "real_name": user.get("real_name") or profile.get("real_name"),
            "display_name": profile.get("display_name") or None,
            "email": profile.get("email"),
            "image_72": profile.get("image_72"),
            "title": profile.get("title") or None,
            "is_bot": bool(user.get("is_bot", False)),
            "is_admin": bool(user.get("is_admin", False)),
            "is_owner": bool(user.get("is_owner", False)),
            "tz": user.get("tz"),
        }

    async def conversations_info(self, channel_id: str) -> Dict[str, Any]:
        result = await self.api_call("conversations.info", {"channel": channel_id})
        return result.get("channel", {})

    async def chat_post_message(
        self,
        channel: str,
        text: str,
        thread_ts: Optional[str] = None,
        username: Optional[str] = None,
        icon_url: Optional[str] = None
    ) -> Dict[str, Any]:
        """Post a message. username/icon_url override the bot identity."""
        return await self.api_call("chat.postMessage", {
            "channel": channel,
            "text": text,
            "thread_ts": thread_ts,
            "username": username,
            "icon_url": icon_url,
        })

    async def reactions_add(self, channel: str, timestamp: str, name: str) -> Dict[str, Any]:
        return await self.api_call("reactions.add", {
            "channel": channel,
            "timestamp": timestamp,
            "name": name,
        })

    async def auth_test(self) -> Dict[str, Any]:
        """Cheap authenticated no-op used to check that a token still works."""
        return await self.api_call("auth.test")

    async def auth_revoke(self) -> Dict[str, Any]:
        return await self.api_call("auth.revoke")


SlackClientFactory = Callable[[str], SlackApiClient]


def make_client_factory(base_url: str = DEFAULT_API_BASE_URL, timeout: float = 10.0) -> SlackClientFactory:
    """Build a factory that creates a client for a given token."""
    def factory(token: str) -> SlackApiClient:
        return SlackApiClient(token, base_url=base_url, timeout=timeout)
    return factory
