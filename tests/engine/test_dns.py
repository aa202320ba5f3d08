# tests/engine/test_dns.py

import pytest
import dns.exception
import dns.resolver
from unittest.mock import AsyncMock, MagicMock
from hostnode.engine.dns.resolver import DnsPythonTxtResolver, DnsLookupError

def txt_answer(*values):
    return [MagicMock(strings=[v.encode("utf-8") for v in value]) for value in values]

async def test_txt_strings_are_joined():
    resolver = AsyncMock()
    resolver.resolve.return_value = txt_answer(["mandala-project-verification=", "abc:agent"], ["other"])
    records = await DnsPythonTxtResolver(timeout=1, resolver=resolver).lookup_txt("mandala_project.example.org")
    assert records == ["mandala-project-verification=abc:agent", "other"]
    resolver.resolve.assert_awaited_once_with("mandala_project.example.org", "TXT", lifetime=1)

@pytest.mark.parametrize("error", [dns.resolver.NXDOMAIN(), dns.resolver.NoAnswer()])
async def test_missing_records_are_empty(error):
    resolver = AsyncMock()
    resolver.resolve.side_effect = error
    assert await DnsPythonTxtResolver(timeout=1, resolver=resolver).lookup_txt("x.example.org") == []

@pytest.mark.parametrize("error", [dns.exception.Timeout(), dns.resolver.NoNameservers()])
async def test_lookup_failures_are_transient(error):
    resolver = AsyncMock()
    resolver.resolve.side_effect = error
    with pytest.raises(DnsLookupError):
        await DnsPythonTxtResolver(timeout=1, resolver=resolver).lookup_txt("x.example.org")
