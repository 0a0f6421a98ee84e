import random

import pytest
from fastapi.testclient import TestClient

from echo_sandbox.app import create_app
from echo_sandbox.config import ServerConfig


class RecordingSleep:
    """Stands in for time.sleep and remembers every requested duration."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)

    @property
    def last_ms(self):
        return round(self.calls[-1] * 1000)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_client(sleep):
    def factory(defaults=None, replay_transport=None, seed=42, **overrides):
        settings = dict(scenario_file="", log_requests=False, hostname="test-host")
        settings.update(overrides)
        app = create_app(
            ServerConfig(**settings),
            rng=random.Random(seed),
            sleep=sleep,
            defaults=defaults or {},
            replay_transport=replay_transport,
        )
        return TestClient(app)
    return factory


@pytest.fixture
def client(make_client):
    return make_client()
