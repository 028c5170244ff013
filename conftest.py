import pytest

from localfeed.backend import CachingFeedStore, SimpleFeedStore


@pytest.fixture(params=["simple", "caching"])
def store(request, tmp_path):
    """A feed store rooted in a temporary directory, with and without the
    in-memory index."""
    if request.param == "simple":
        yield SimpleFeedStore(tmp_path / "feed")
        return
    caching = CachingFeedStore(tmp_path / "feed")
    yield caching
    caching.close()
