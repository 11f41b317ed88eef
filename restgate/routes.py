"""Route templates and their bucket scope keys.

Quota scopes follow the route template and its major parameters rather than
the literal URL:

    Route("POST", "/channels/{channel_id}/messages", channel_id=1)
    Route("POST", "/channels/{channel_id}/messages", channel_id=2)

format two different paths and land in two different buckets, while every
message sent to channel 1 shares one.
"""

from typing import Any, Dict
from urllib.parse import quote

MAJOR_PARAMETERS = ("channel_id", "guild_id", "webhook_id", "webhook_token")


class Route:
    """A method plus a path template filled with its parameters."""

    def __init__(self, method: str, path: str, **parameters: Any):
        self.method = method.upper()
        self.path = path
        self.parameters: Dict[str, Any] = parameters
        if parameters:
            self.url_path = path.format_map(
                {key: quote(str(value), safe="") for key, value in parameters.items()}
            )
        else:
            self.url_path = path

    @property
    def bucket_key(self) -> str:
        """Scope key under which requests on this route are rate limited."""
        majors = [
            str(self.parameters[name])
            for name in MAJOR_PARAMETERS
            if name in self.parameters
        ]
        key = f"{self.method} {self.path}"
        if majors:
            key += ":" + ":".join(majors)
        return key

    def __repr__(self) -> str:
        return f"Route({self.method} {self.url_path})"
