from datetime import date

from cache.keys import cache_key, canonical_request, search_cache_key, search_request


def test_identical_requests_share_a_key():
    first = cache_key("fred", "GDPC1", date(2020, 1, 1), date(2023, 12, 31))
    second = cache_key("fred", "GDPC1", date(2020, 1, 1), date(2023, 12, 31))
    assert first == second
    assert len(first) == 64


def test_single_field_change_changes_key():
    base = cache_key("fred", "GDPC1", date(2020, 1, 1), date(2023, 12, 31))
    shifted = cache_key("fred", "GDPC1", date(2020, 1, 1), date(2023, 12, 30))
    other_source = cache_key("worldbank", "GDPC1", date(2020, 1, 1), date(2023, 12, 31))
    assert len({base, shifted, other_source}) == 3


def test_canonical_form_uses_iso_dates_and_pipes():
    raw = canonical_request("fred", "GDPC1", date(2020, 1, 1), None)
    assert raw == "fred|GDPC1|2020-01-01|"


def test_delimiter_inside_fields_is_escaped():
    assert cache_key("src", "a|b", "c") != cache_key("src", "a", "b|c")


def test_search_keys_are_namespaced():
    assert search_cache_key("fred", "GDP") == cache_key("fred", "search", "GDP")
    assert search_cache_key("fred", "GDP") != cache_key("fred", "GDP")
    assert cache_key("fred", *search_request("GDP", 10)) == search_cache_key("fred", "GDP", 10)
