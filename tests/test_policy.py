import random

from fakes import make_config
from smartstore_fetcher.errors import BlockedError, BlockReason, TransientCause, TransientError
from smartstore_fetcher.policy import retry_delay, severity_for
from smartstore_fetcher.proxies import Severity
from smartstore_fetcher.settings import FetcherConfig


def blocked(reason=BlockReason.CAPTCHA) -> BlockedError:
    return BlockedError(reason)


def transient(cause=TransientCause.NETWORK_TIMEOUT) -> TransientError:
    return TransientError(cause)


def test_every_block_reason_escalates():
    for reason in BlockReason:
        assert severity_for(blocked(reason)) is Severity.ESCALATED


def test_transient_failures_are_normal_severity():
    for cause in TransientCause:
        assert severity_for(transient(cause)) is Severity.NORMAL


def test_blocked_delay_is_fixed():
    cfg = make_config(blocked_retry_delay_s=2.0, retry_base_delay_s=5.0)
    assert retry_delay(blocked(), 1, cfg) == 2.0
    assert retry_delay(blocked(), 3, cfg) == 2.0


def test_blocked_delay_is_shorter_than_first_backoff_by_default():
    cfg = FetcherConfig()
    assert retry_delay(blocked(), 1, cfg) < retry_delay(transient(), 1, cfg)


def test_transient_delay_doubles_per_attempt():
    cfg = make_config(retry_base_delay_s=1.5, retry_max_delay_s=100, retry_jitter_s=0)
    assert [retry_delay(transient(), n, cfg) for n in (1, 2, 3, 4)] == [1.5, 3.0, 6.0, 12.0]


def test_transient_delay_is_capped_including_jitter():
    cfg = make_config(retry_base_delay_s=10, retry_max_delay_s=30, retry_jitter_s=5)
    assert retry_delay(transient(), 10, cfg) == 30


def test_jitter_stays_within_bounds():
    cfg = make_config(retry_base_delay_s=1, retry_max_delay_s=100, retry_jitter_s=0.5)
    rng = random.Random(7)
    for _ in range(50):
        assert 2.0 <= retry_delay(transient(), 2, cfg, rng=rng) <= 2.5
