"""
Tests for gateway API key resolution.
"""

import json

import pytest

from burst_sms.config import Settings
from burst_sms.credentials import ApiKeyProvider
from burst_sms.exceptions import ConfigurationError


class FakeSecretsClient:
    def __init__(self, secret_string):
        self.secret_string = secret_string
        self.calls = 0

    def get_secret_value(self, SecretId):
        self.calls += 1
        return {"SecretString": self.secret_string}


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_settings(**overrides):
    values = {"DATABASE_URL": "sqlite://", "TELNYX_API_KEY": "", "TELNYX_SECRET_ID": ""}
    values.update(overrides)
    return Settings(**values)


def test_key_from_settings_wins():
    client = FakeSecretsClient(json.dumps({"TELNYX_API_KEY": "from-aws"}))
    provider = ApiKeyProvider(make_settings(TELNYX_API_KEY="from-env", TELNYX_SECRET_ID="prod/telnyx"), client=client)

    assert provider.get_api_key() == "from-env"
    assert client.calls == 0


def test_json_secret_cached_for_ttl():
    client = FakeSecretsClient(json.dumps({"TELNYX_API_KEY": "from-aws"}))
    clock = FakeClock()
    provider = ApiKeyProvider(make_settings(TELNYX_SECRET_ID="prod/telnyx"), client=client,
                              ttl_seconds=60, clock=clock)

    assert provider.get_api_key() == "from-aws"
    clock.now = 59
    assert provider.get_api_key() == "from-aws"
    assert client.calls == 1

    clock.now = 61
    provider.get_api_key()
    assert client.calls == 2


def test_plain_string_secret():
    provider = ApiKeyProvider(make_settings(TELNYX_SECRET_ID="prod/telnyx"),
                              client=FakeSecretsClient("KEY_PLAIN"))

    assert provider.get_api_key() == "KEY_PLAIN"


def test_secret_without_key_field():
    provider = ApiKeyProvider(make_settings(TELNYX_SECRET_ID="prod/telnyx"),
                              client=FakeSecretsClient(json.dumps({"OTHER": "x"})))

    with pytest.raises(ConfigurationError):
        provider.get_api_key()


def test_nothing_configured():
    with pytest.raises(ConfigurationError):
        ApiKeyProvider(make_settings()).get_api_key()
