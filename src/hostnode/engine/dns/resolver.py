# src/hostnode/engine/dns/resolver.py

import logging
from abc import ABC, abstractmethod
from typing import List, Optional
import dns.asyncresolver
import dns.exception
import dns.resolver
from hostnode.core.config import settings

logger = logging.getLogger(__name__)

class DnsLookupError(Exception):
    """DNS 查询暂时失败 (超时、无可用的权威服务器等)，调用方可以稍后重试。"""
    pass

class BaseTxtResolver(ABC):
    @abstractmethod
    async def lookup_txt(self, name: str) -> List[str]:
        """返回 name 上的全部 TXT 记录；记录不存在时返回空列表。"""
        raise NotImplementedError

class DnsPythonTxtResolver(BaseTxtResolver):
    def __init__(self, timeout: Optional[float] = None, resolver: Optional[dns.asyncresolver.Resolver] = None):
        self.timeout = timeout or settings.DNS_TIMEOUT_SECONDS
        self.resolver = resolver or dns.asyncresolver.Resolver()

    async def lookup_txt(self, name: str) -> List[str]:
        try:
            answer = await self.resolver.resolve(name, "TXT", lifetime=self.timeout)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except (dns.exception.Timeout, dns.resolver.NoNameservers) as e:
            logger.warning(f"TXT lookup for {name} failed: {e}")
            raise DnsLookupError(str(e)) from e
        except dns.exception.DNSException as e:
            raise DnsLookupError(str(e)) from e
        return [b"".join(rdata.strings).decode("utf-8", errors="replace") for rdata in answer]
