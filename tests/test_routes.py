"""Tests for route templates and bucket keys."""

from restgate.routes import Route


class TestRoute:
    """Route formatting and scope keys."""

    def test_method_is_upper_cased(self):
        assert Route("get", "/users/@me").method == "GET"

    def test_url_path_without_parameters(self):
        assert Route("GET", "/users/@me").url_path == "/users/@me"

    def test_parameters_are_formatted_and_quoted(self):
        route = Route("PUT", "/channels/{channel_id}/messages/{message_id}/reactions/{emoji}/@me",
                      channel_id=1, message_id=2, emoji="👍")

        assert route.url_path == "/channels/1/messages/2/reactions/%F0%9F%91%8D/@me"

    def test_major_parameters_split_buckets(self):
        first = Route("POST", "/channels/{channel_id}/messages", channel_id=1)
        second = Route("POST", "/channels/{channel_id}/messages", channel_id=2)

        assert first.bucket_key == "POST /channels/{channel_id}/messages:1"
        assert first.bucket_key != second.bucket_key

    def test_minor_parameters_share_bucket(self):
        first = Route("DELETE", "/channels/{channel_id}/messages/{message_id}", channel_id=1, message_id=10)
        second = Route("DELETE", "/channels/{channel_id}/messages/{message_id}", channel_id=1, message_id=11)

        assert first.url_path != second.url_path
        assert first.bucket_key == second.bucket_key

    def test_method_is_part_of_key(self):
        assert Route("GET", "/guilds/{guild_id}", guild_id=5).bucket_key == "GET /guilds/{guild_id}:5"
        assert Route("PATCH", "/guilds/{guild_id}", guild_id=5).bucket_key == "PATCH /guilds/{guild_id}:5"

    def test_webhook_majors_in_order(self):
        route = Route("POST", "/webhooks/{webhook_id}/{webhook_token}", webhook_id=7, webhook_token="tok")

        assert route.bucket_key == "POST /webhooks/{webhook_id}/{webhook_token}:7:tok"
