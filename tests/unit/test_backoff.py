import pytest

from pricewatch.utils.backoff import retry_delay_ms

def test_retry_delay_doubles():
    assert retry_delay_ms(1000, 0) == 1000
    assert retry_delay_ms(1000, 1) == 2000
    assert retry_delay_ms(1000, 2) == 4000

def test_retry_delay_scales_with_initial():
    assert [retry_delay_ms(250, a) for a in range(3)] == [250, 500, 1000]

def test_retry_delay_rejects_negative_attempt():
    with pytest.raises(ValueError):
        retry_delay_ms(1000, -1)
