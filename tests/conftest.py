import pytest

from pixel_tracker import Settings, create_app


class FakeClock:
    """Epoch-millis clock moved by hand."""

    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(db_path=str(tmp_path / "pixels.db"), dedup_window_seconds=60)


@pytest.fixture
def app(settings, clock):
    app = create_app(settings, clock=clock)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def registry(app):
    return app.extensions["pixel_tracker"]["registry"]


@pytest.fixture
def event_log(app):
    return app.extensions["pixel_tracker"]["event_log"]
