import pytest

from smartstore_fetcher.utils import cache_key_for, normalize_url, parse_smartstore_url, random_delay


def test_parse_smartstore_url():
    parsed = parse_smartstore_url("https://smartstore.naver.com/rainbows9030/products/11102379008?NaPm=x")
    assert parsed.store_name == "rainbows9030"
    assert parsed.product_id == "11102379008"


@pytest.mark.parametrize(
    "url",
    [
        "",
        "not a url",
        "https://smartstore.naver.com/rainbows9030",
        "https://smartstore.naver.com/rainbows9030/products/",
        "https://smartstore.naver.com/rainbows9030/category/123",
        "https://smartstore.naver.com/rainbows9030/products/abc",
        "https://example.com/rainbows9030/products/123",
        "ftp://smartstore.naver.com/rainbows9030/products/123",
    ],
)
def test_parse_smartstore_url_rejects_other_shapes(url):
    assert parse_smartstore_url(url) is None


def test_normalize_url_drops_query_fragment_and_trailing_slash():
    assert (
        normalize_url("HTTPS://SmartStore.Naver.com/store/products/1/?a=1#reviews")
        == "https://smartstore.naver.com/store/products/1"
    )


def test_cache_key_has_prefix():
    assert cache_key_for("https://smartstore.naver.com/s/products/1") == "product:https://smartstore.naver.com/s/products/1"
    assert cache_key_for("https://smartstore.naver.com/s/products/1", prefix="p:").startswith("p:https://")


@pytest.mark.asyncio
async def test_random_delay_stays_in_range():
    slept = []

    async def sleep(seconds):
        slept.append(seconds)

    for _ in range(20):
        await random_delay((1.0, 2.0), sleep=sleep)
    await random_delay((0, 0), sleep=sleep)

    assert all(1.0 <= s <= 2.0 for s in slept[:-1])
    assert slept[-1] == 0
