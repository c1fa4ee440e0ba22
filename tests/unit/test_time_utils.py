from pricewatch.utils.time import age_ms, is_older_than, ms_to_s, now_ms, utc_dt

def test_now_ms_is_epoch_millis():
    assert now_ms() > 1_600_000_000_000

def test_age_and_older_than():
    assert age_ms(1_000, 4_000) == 3_000
    assert age_ms(5_000, 4_000) == 0
    assert is_older_than(1_000, 2_000, 3_001) is True
    assert is_older_than(1_000, 2_000, 3_000) is False

def test_conversions():
    assert ms_to_s(1500) == 1.5
    assert utc_dt(0).year == 1970
