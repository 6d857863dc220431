import pytest

from parcel_sms.utils.phone import is_valid_e164, normalize_phone_to_e164


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0701234567", "+46701234567"),
        ("070-123 45 67", "+46701234567"),
        ("46701234567", "+46701234567"),
        ("+46701234567", "+46701234567"),
        ("0046701234567", "+46701234567"),
        ("+47 912 34 567", "+4791234567"),
    ],
)
def test_normalize_phone_to_e164(raw, expected):
    assert normalize_phone_to_e164(raw) == expected


@pytest.mark.parametrize("raw", ["", "abc", "+0123"])
def test_normalize_rejects_invalid(raw):
    with pytest.raises(ValueError):
        normalize_phone_to_e164(raw)


def test_is_valid_e164():
    assert is_valid_e164("+46701234567")
    assert not is_valid_e164("0701234567")
    assert not is_valid_e164(None)
    assert not is_valid_e164("+1234567890123456")
