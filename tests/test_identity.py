"""
tests/test_identity.py — Unit tests for ClientIdentity derivation
"""
from __future__ import annotations

from errexplain.core.identity import MAX_CLIENT_ID_LENGTH, build_client_id


def test_forwarded_for_wins_over_real_ip():
    client_id = build_client_id("203.0.113.7", "10.0.0.1", "Mozilla/5.0")
    assert client_id.startswith("203_0_113_7_")


def test_real_ip_used_when_no_forwarded_for():
    assert build_client_id(None, "10.0.0.1", "curl/8.0").startswith("10_0_0_1_")


def test_unknown_origin_sentinel():
    assert build_client_id(None, None, "curl/8.0").startswith("unknown_")


def test_fingerprint_is_first_eight_base64_chars():
    # base64("testclient") == "dGVzdGNsaWVudA=="
    assert build_client_id(None, None, "testclient") == "unknown_dGVzdGNs"


def test_same_inputs_give_same_identity():
    a = build_client_id("198.51.100.2", None, "Mozilla/5.0 (X11)")
    b = build_client_id("198.51.100.2", None, "Mozilla/5.0 (X11)")
    assert a == b


def test_different_user_agents_differ():
    assert build_client_id("198.51.100.2", None, "Firefox") != build_client_id(
        "198.51.100.2", None, "Chrome"
    )


def test_unsafe_characters_replaced_and_length_capped():
    client_id = build_client_id(
        "2001:db8:85a3::8a2e:370:7334, 198.51.100.2", None, "Mozilla/5.0"
    )
    assert len(client_id) <= MAX_CLIENT_ID_LENGTH
    assert all(ch.isalnum() or ch == "_" for ch in client_id)


def test_leading_underscore_replaced():
    client_id = build_client_id("::1", None, "")
    assert client_id == "u_1_"
