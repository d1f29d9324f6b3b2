import pytest

from screen_mockup.config import Settings

from .helpers import make_asset


@pytest.fixture
def settings():
    return Settings(api_key="test-key", target_dimension=128)


@pytest.fixture
def context_asset():
    # 16:9 room photo stand-in
    return make_asset(192, 108, color=(40, 120, 200), name="living_room.jpg")


@pytest.fixture
def design_asset():
    return make_asset(60, 90, color=(250, 200, 0), name="poster.png")
