"""Unit tests for the Lambda handler wiring."""

import json
from unittest.mock import Mock, patch

from social2rss.config import BedrockConfig, ChannelConfig, StorageConfig, SyncConfig
from social2rss.errors import FeedStorageError, RateLimitedError
from social2rss.lambda_handler import lambda_handler
from social2rss.models import Profile, RawItem

PROFILES = [
    Profile(id="acme", url="https://x.com/acme", name="Acme", platform="X"),
    Profile(id="beta", url="https://x.com/beta", name="Beta", platform="X"),
]


def make_config(profiles=PROFILES):
    config = Mock()
    config.aws_region = "us-east-1"
    config.get_profiles.return_value = list(profiles)
    config.get_sync_config.return_value = SyncConfig(
        inter_chunk_delay=0, retry_backoff=0
    )
    config.get_bedrock_config.return_value = BedrockConfig()
    config.get_channel_config.return_value = ChannelConfig()
    config.get_storage_config.return_value = StorageConfig()
    return config


def make_context():
    context = Mock()
    context.aws_request_id = "test-request-123"
    context.function_name = "social2rss"
    return context


def fetch_for(found):
    def fetch_items(profile, model_id):
        return [RawItem(**fields) for fields in found.get(profile.id, [])]

    return fetch_items


def run_handler(event, config, fetch_items, store):
    with (
        patch("social2rss.lambda_handler.Config") as mock_config_class,
        patch("social2rss.lambda_handler.ProfileDiscoverer") as mock_discoverer_class,
        patch("social2rss.lambda_handler.create_feed_store") as mock_create_store,
        patch("social2rss.lambda_handler.send_cloudwatch_metrics") as mock_send_metrics,
    ):
        mock_config_class.return_value = config
        mock_discoverer = Mock()
        mock_discoverer.fetch_items.side_effect = fetch_items
        mock_discoverer_class.return_value = mock_discoverer
        mock_create_store.return_value = store

        response = lambda_handler(event, make_context())

    return response, json.loads(response["body"]), mock_discoverer, mock_send_metrics


def make_store(previous=None):
    store = Mock()
    store.load.return_value = previous
    return store


class TestLambdaHandlerUnit:
    """Unit tests for lambda_handler."""

    def test_successful_sync(self):
        found = {
            "acme": [
                {
                    "title": "New jet",
                    "link": "https://x.com/acme/status/1",
                    "description": "Details",
                    "pub_date": "2024-05-01T10:00:00Z",
                }
            ]
        }
        store = make_store()

        response, body, _, mock_send_metrics = run_handler(
            {}, make_config(), fetch_for(found), store
        )

        assert response["statusCode"] == 200
        metrics = body["metrics"]
        assert metrics["profiles_total"] == 2
        assert metrics["profiles_with_items"] == 1
        assert metrics["items_found"] == 1
        assert metrics["items_in_feed"] == 1
        assert metrics["feed_written"] is True
        assert metrics["circuit_broken"] is False
        assert metrics["errors"] == []
        store.save.assert_called_once()
        assert "https://x.com/acme/status/1" in store.save.call_args.args[0]
        mock_send_metrics.assert_called_once()

    def test_event_selects_profiles(self):
        response, body, mock_discoverer, _ = run_handler(
            {"profiles": ["beta"]}, make_config(), fetch_for({}), make_store()
        )

        assert response["statusCode"] == 200
        assert body["metrics"]["profiles_total"] == 1
        called = [call.args[0].id for call in mock_discoverer.fetch_items.call_args_list]
        assert called == ["beta"]

    def test_event_accepts_single_profile_id(self):
        response, body, mock_discoverer, _ = run_handler(
            {"profiles": "beta"}, make_config(), fetch_for({}), make_store()
        )

        assert response["statusCode"] == 200
        assert body["metrics"]["profiles_total"] == 1
        called = [call.args[0].id for call in mock_discoverer.fetch_items.call_args_list]
        assert called == ["beta"]

    def test_rate_limited_run_trips_circuit(self):
        profiles = [
            Profile(id=f"p{i}", url=f"https://x.com/p{i}", name=f"P{i}", platform="X")
            for i in range(8)
        ]

        def throttled(profile, model_id):
            raise RateLimitedError("ThrottlingException: slow down")

        response, body, _, _ = run_handler(
            {}, make_config(profiles), throttled, make_store()
        )

        assert response["statusCode"] == 200
        metrics = body["metrics"]
        assert metrics["circuit_broken"] is True
        assert metrics["profiles_skipped"] >= 3
        assert metrics["items_found"] == 0
        assert any("Circuit breaker" in error for error in metrics["errors"])

    def test_storage_failure_returns_500(self):
        store = make_store()
        store.save.side_effect = FeedStorageError("bucket unavailable")

        response, body, _, mock_send_metrics = run_handler(
            {}, make_config(), fetch_for({}), store
        )

        assert response["statusCode"] == 500
        assert "Feed storage failure" in body["error"]
        assert body["metrics"]["errors"]
        mock_send_metrics.assert_called_once()

    def test_configuration_failure_returns_500(self):
        config = make_config()
        config.get_profiles.side_effect = FileNotFoundError("Profiles file not found")

        response, body, mock_discoverer, _ = run_handler(
            {}, config, fetch_for({}), make_store()
        )

        assert response["statusCode"] == 500
        assert "Profiles file not found" in body["error"]
        mock_discoverer.fetch_items.assert_not_called()
