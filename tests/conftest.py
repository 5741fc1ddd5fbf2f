import pytest

from teamBalancer.rating import clear_weight_cache


@pytest.fixture(autouse=True)
def fresh_weight_cache():
    """The weight cache is process wide; start every test from empty."""
    clear_weight_cache()
    yield
    clear_weight_cache()
