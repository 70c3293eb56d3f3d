"""
Domain helpers: validation, MXID parsing and domain extraction from free text
"""

import re
from typing import List, Optional

# Domain-like tokens inside room topics
DOMAIN_PATTERN = re.compile(r"[a-zA-Z0-9][-a-zA-Z0-9]*\.[a-zA-Z]{2,}[/:]?")


def normalize_domain(domain: Optional[str]) -> str:
    """Domains are compared case-insensitively"""
    return (domain or "").strip().lower()


def is_valid_domain(domain: Optional[str]) -> bool:
    """A server name must be non-empty and carry neither a path nor a port"""
    if not domain or not domain.strip():
        return False
    return '/' not in domain and ':' not in domain


def extract_domain_from_mxid(mxid: str) -> Optional[str]:
    """
    Return the host part of a Matrix user id

    >>> extract_domain_from_mxid("@alice:example.org")
    'example.org'
    """
    if not mxid or not mxid.startswith('@'):
        return None
    parts = mxid.split(':', 1)
    if len(parts) != 2:
        return None
    return parts[1]


def extract_domains_from_text(text: str) -> List[str]:
    """Find domain-like substrings in text, ignoring onion services"""
    domains = []
    if not text:
        return domains

    for match in DOMAIN_PATTERN.finditer(text):
        domain = match.group(0).rstrip('/')
        if '.' in domain and not domain.endswith('.onion'):
            domains.append(domain)

    return domains
