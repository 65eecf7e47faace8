import pytest

from fakes import FakeRepository, KeywordEmbedder


@pytest.fixture
def repo():
    return FakeRepository()


@pytest.fixture
def embedder():
    return KeywordEmbedder()
