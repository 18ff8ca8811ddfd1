"""Reachability probes for remote tool endpoints."""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger(__name__)

HTTP_SCHEMES = frozenset({"http", "https", "mcp+http", "mcp+https"})
STDIO_SCHEME = "mcp"


@dataclass(frozen=True, slots=True)
class ProbeResult:
    url: str
    reachable: bool
    message: str
    kind: str = "ok"
    fix_hint: str = ""


class Prober(Protocol):
    async def probe(self, url: str, timeout_s: float) -> ProbeResult: ...


# (kind, lowercase markers in the connect error text, hint template)
_CONNECT_FAILURES: tuple[tuple[str, tuple[str, ...], str], ...] = (
    (
        "dns_resolution",
        (
            "temporary failure in name resolution",
            "name or service not known",
            "nodename nor servname provided",
            "getaddrinfo",
            "enotfound",
            "eai_again",
        ),
        "Host of {url} does not resolve; check the server URL for typos.",
    ),
    (
        "connection_refused",
        ("connection refused", "actively refused"),
        "Nothing is listening at {url}; start the tool server or fix its port.",
    ),
    (
        "network_unreachable",
        ("network is unreachable", "no route to host"),
        "No network route to {url}; build from a host that can reach it or use --offline.",
    ),
)


def _classify_http_error(exc: Exception, url: str) -> tuple[str, str]:
    """Map a probe failure to a short kind and a hint for the build report."""
    if isinstance(exc, httpx.TimeoutException):
        return "timeout", f"{url} did not answer in time; raise PROBE_TIMEOUT_SECONDS or retry."
    if isinstance(exc, httpx.ConnectError):
        text = str(exc).lower()
        for kind, markers, hint in _CONNECT_FAILURES:
            if any(marker in text for marker in markers):
                return kind, hint.format(url=url)
        return "connect_error", f"Could not open a connection to {url}."
    if isinstance(exc, httpx.NetworkError):
        return "network_error", f"Connection to {url} failed mid-request."
    return "unknown_error", f"Probing {url} failed unexpectedly."


class EndpointProber:
    """Probes http(s) endpoints with a GET and stdio launchers via PATH lookup."""

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def probe(self, url: str, timeout_s: float) -> ProbeResult:
        parts = urlsplit(url)
        if parts.scheme in HTTP_SCHEMES:
            return await self._probe_http(url, parts.scheme.removeprefix("mcp+"), timeout_s)
        if parts.scheme == STDIO_SCHEME:
            return self._probe_launcher(url, parts.netloc)
        return ProbeResult(
            url=url,
            reachable=False,
            message=f"unsupported tool server scheme '{parts.scheme or '(none)'}'",
            kind="unsupported_scheme",
            fix_hint="Use http(s)://, mcp+http(s):// or mcp://<command>/<args>.",
        )

    async def _probe_http(self, url: str, scheme: str, timeout_s: float) -> ProbeResult:
        target = urlsplit(url)._replace(scheme=scheme).geturl()
        try:
            if self._client is not None:
                resp = await self._client.get(target, timeout=timeout_s)
            else:
                async with httpx.AsyncClient(timeout=timeout_s) as client:
                    resp = await client.get(target)
        except Exception as exc:
            kind, hint = _classify_http_error(exc, target)
            return ProbeResult(
                url=url, reachable=False, message=f"[{kind}] {exc}", kind=kind, fix_hint=hint
            )
        # 4xx still proves a server is answering; tool servers often reject bare GETs
        ok = resp.status_code < 500
        return ProbeResult(
            url=url,
            reachable=ok,
            message=f"HTTP {resp.status_code}",
            kind="ok" if ok else "server_error",
            fix_hint="" if ok else f"Server at {target} is failing; check its logs.",
        )

    def _probe_launcher(self, url: str, command: str) -> ProbeResult:
        if not command:
            return ProbeResult(
                url=url,
                reachable=False,
                message="stdio tool server URL has no launcher command",
                kind="invalid_url",
                fix_hint="Write stdio servers as mcp://<command>/<package-or-args>.",
            )
        found = shutil.which(command) is not None
        return ProbeResult(
            url=url,
            reachable=found,
            message=f"{command} found" if found else f"{command} not found on PATH",
            kind="ok" if found else "launcher_missing",
            fix_hint="" if found else f"Install {command} and ensure it is on your PATH.",
        )


async def probe_all(
    urls: Iterable[str],
    prober: Prober,
    *,
    timeout_s: float,
    max_concurrent: int,
) -> dict[str, ProbeResult]:
    """Probe each distinct URL once with bounded parallelism and a hard per-probe bound."""
    semaphore = asyncio.Semaphore(max(1, max_concurrent))

    async def one(url: str) -> ProbeResult:
        async with semaphore:
            try:
                return await asyncio.wait_for(prober.probe(url, timeout_s), timeout=timeout_s)
            except TimeoutError:
                return ProbeResult(
                    url=url,
                    reachable=False,
                    message=f"no answer within {timeout_s:g}s",
                    kind="timeout",
                    fix_hint=f"{url} did not answer in time; raise PROBE_TIMEOUT_SECONDS or retry.",
                )
            except Exception as exc:
                logger.warning("Probe crashed for %s", url, exc_info=True)
                return ProbeResult(
                    url=url, reachable=False, message=f"[probe_error] {exc}", kind="probe_error"
                )

    unique = sorted(set(urls))
    results = await asyncio.gather(*(one(url) for url in unique))
    return dict(zip(unique, results, strict=True))
