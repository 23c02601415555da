import logging

import pytest

from connectdiff.core.errors import EncodingUnsupported
from connectdiff.core.naming import (
    REFERENCE_TOKEN,
    check_host_encoding,
    content_filename,
    encode_name,
    host_encodes_reference,
)


def test_accented_name_uses_utf8_bytes_uppercase_hex():
    assert encode_name("Café") == "Caf%C3%A9"


def test_unreserved_characters_pass_through_and_are_stable():
    safe = "Abc-xyz_0.9~Z"
    assert encode_name(safe) == safe
    assert encode_name(encode_name(safe)) == encode_name(safe)


def test_reserved_and_multibyte_characters_are_escaped():
    assert encode_name("Sales Queue") == "Sales%20Queue"
    assert encode_name("a/b") == "a%2Fb"
    assert encode_name("100%") == "100%25"
    assert encode_name("\U0001F600") == "%F0%9F%98%80"


def test_distinct_names_give_distinct_tokens():
    names = ["Sales", "sales", "Sales ", "Sales%20", "Sales/", "Café", "Cafe", "Caf%C3%A9"]
    tokens = [encode_name(n) for n in names]
    assert len(set(tokens)) == len(names)


def test_content_filename():
    assert content_filename("flow", "Main Menu") == "flow_Main%20Menu.json"
    assert content_filename("routingQs", "Tier1") == "routingQs_Tier1.json"


def test_host_check_passes_on_utf8():
    assert host_encodes_reference(["utf-8", "UTF8"])
    check_host_encoding(encodings=["utf-8"])


@pytest.mark.parametrize("encoding", ["ascii", "latin-1", "no-such-codec"])
def test_host_check_fails_without_utf8(encoding):
    assert not host_encodes_reference([encoding])
    with pytest.raises(EncodingUnsupported) as exc:
        check_host_encoding(encodings=[encoding])
    assert REFERENCE_TOKEN in str(exc.value)


def test_host_check_override_only_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="connectdiff.core.naming"):
        check_host_encoding(allow_override=True, encodings=["ascii"])
    assert "overridden" in caplog.text
