import pytest

from discovery.domains import (
    extract_domain_from_mxid, extract_domains_from_text, is_valid_domain, normalize_domain
)


@pytest.mark.parametrize("domain", ["matrix.org", "Example.COM", "localhost", "a.b.c"])
def test_valid_domains(domain):
    assert is_valid_domain(domain)


@pytest.mark.parametrize("domain", ["", "   ", None, "x.org:8448", "x.org/path", "https://x.org"])
def test_invalid_domains(domain):
    assert not is_valid_domain(domain)


def test_normalize_domain_lowercases_and_strips():
    assert normalize_domain("  Matrix.ORG ") == "matrix.org"
    assert normalize_domain(None) == ""


def test_extract_domain_from_mxid():
    assert extract_domain_from_mxid("@alice:example.org") == "example.org"
    # Everything after the first colon is the host, port included
    assert extract_domain_from_mxid("@bob:example.org:8448") == "example.org:8448"


@pytest.mark.parametrize("mxid", ["alice:example.org", "@alice", "", "#room:example.org"])
def test_extract_domain_from_mxid_rejects_non_user_ids(mxid):
    assert extract_domain_from_mxid(mxid) is None


def test_extract_domains_from_text_matches_two_label_tokens():
    topic = "Bridged with chat.example.com, see https://docs.project.io/guide for help"
    # Only the first two labels of a longer name match
    assert extract_domains_from_text(topic) == ["chat.example", "docs.project"]


def test_extract_domains_from_text_drops_trailing_slash():
    assert extract_domains_from_text("visit matrix.org/ today") == ["matrix.org"]


def test_extract_domains_from_text_keeps_trailing_colon():
    # A trailing ':' survives extraction; such tokens fail domain validation later
    assert extract_domains_from_text("matrix.org:8448") == ["matrix.org:"]


def test_extract_domains_from_text_ignores_onion_and_plain_words():
    assert extract_domains_from_text("hidden at abcdefgh.onion") == []
    assert extract_domains_from_text("no domains in here") == []
    assert extract_domains_from_text("") == []
