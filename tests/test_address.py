from __future__ import annotations

import pytest

from pyhyperbeam.address import Address, build_address, split_path
from pyhyperbeam.exceptions import DuplicateKeyError, InvalidSegmentError, UnencodableValueError


def test_build_meta_info_address() -> None:
    assert build_address("meta", "1.0", ["info"]) == "/~meta@1.0/info"


def test_build_process_address_with_params() -> None:
    address = build_address(
        "process",
        "1.0",
        ["compute", "balances"],
        {"count": 42, "items": ["apple", "banana"]},
        base="PID123",
    )
    assert address == "/PID123~process@1.0/compute/balances?count+integer=42&items+list=apple,banana"


def test_segment_appears_verbatim_and_in_order() -> None:
    address = build_address("process", "1.0", ["b-segment", "a_segment", "c.segment"])
    assert address == "/~process@1.0/b-segment/a_segment/c.segment"


def test_segment_is_quoted_only_where_the_url_needs_it() -> None:
    assert build_address("process", "1.0", ["a b", "café", "x:y@z"]) == "/~process@1.0/a%20b/caf%C3%A9/x:y@z"


def test_no_query_when_params_empty() -> None:
    assert "?" not in build_address("meta", "1.0", ["info"], {})


@pytest.mark.parametrize("segment", ["", "a/b", "what?"])
def test_invalid_segment(segment: str) -> None:
    with pytest.raises(InvalidSegmentError) as exc_info:
        build_address("process", "1.0", ["now", segment])
    assert exc_info.value.segment == segment


@pytest.mark.parametrize(
    ("device", "version", "base"),
    [
        ("", "1.0", ""),
        ("pro/cess", "1.0", ""),
        ("process", "", ""),
        ("process", "1/0", ""),
        ("process", "1.0", "id/with/slash"),
        ("process", "1.0", "id~tilde"),
    ],
)
def test_invalid_root_parts(device: str, version: str, base: str) -> None:
    with pytest.raises(InvalidSegmentError):
        build_address(device, version, base=base)


def test_parameter_errors_surface_at_construction() -> None:
    with pytest.raises(UnencodableValueError):
        Address(device="process", version="1.0", params={"items": ["a,b"]})
    with pytest.raises(DuplicateKeyError):
        Address(device="process", version="1.0", params=[("a", "1"), ("a", "2")])


def test_address_is_deterministic() -> None:
    address = Address(device="process", version="1.0", base="PID", params={"n": 1})
    assert address.render() == address.render() == str(address)


def test_child_appends_and_validates() -> None:
    root = Address(device="process", version="1.0", base="PID")
    assert root.child("compute", "cache").render() == "/PID~process@1.0/compute/cache"
    assert root.segments == ()
    with pytest.raises(InvalidSegmentError):
        root.child("")


def test_split_path() -> None:
    assert split_path(None) == ()
    assert split_path("") == ()
    assert split_path("/") == ()
    assert split_path("balances") == ("balances",)
    assert split_path("/balances/alice/") == ("balances", "alice")
    with pytest.raises(InvalidSegmentError):
        split_path("balances//alice")
