import pytest
from bdl.core.values import (
    is_truthy,
    is_value,
    to_display_string,
    copy_value,
    normalize_results,
)


@pytest.mark.parametrize("value", [None, False, 0, 0.0, "false", "0"])
def test_falsy_values(value):
    assert is_truthy(value) is False


@pytest.mark.parametrize("value", [True, 1, -2.5, "yes", "False", "", {}, {"a": 1}])
def test_truthy_values(value):
    assert is_truthy(value) is True


def test_display_strings():
    assert to_display_string(None) == ""
    assert to_display_string("Alex") == "Alex"
    assert to_display_string(True) == "true"
    assert to_display_string(False) == "false"
    assert to_display_string(5) == "5"
    assert to_display_string(5.0) == "5"
    assert to_display_string(100.5) == "100.5"
    assert to_display_string({"a": 1, "b": {"c": True}}) == "{a: 1, b: {c: true}}"


def test_is_value():
    assert is_value(None)
    assert is_value({"nested": {"ok": True, "score": 1.5}})
    assert not is_value(object())
    assert not is_value([1, 2])
    assert not is_value({1: "non-string key"})


def test_copy_value_is_deep_for_mappings():
    defaults = {"modules": {"passwords": True}}
    copied = copy_value(defaults)
    copied["modules"]["phishing"] = True
    assert defaults == {"modules": {"passwords": True}}


def test_normalize_results():
    assert normalize_results(None) == []
    assert normalize_results("msg") == ["msg"]
    assert normalize_results(("msg", "next")) == ["msg", "next"]
    assert normalize_results(["a"]) == ["a"]
