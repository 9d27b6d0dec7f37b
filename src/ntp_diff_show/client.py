"""Time-source clients.

A client turns a source address into a tagged outcome: either the time the
source reported, or a human-readable reason why it could not. Clients never
raise for network or protocol problems; the sampler relies on that.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, Union

import logging
import socket
import struct
import time

import requests

# Seconds between the NTP era 0 epoch (1900) and the Unix epoch.
NTP_EPOCH = 2208988800
NTP_PORT = 123
_NTP_PACKET_LEN = 48
_MODE_SERVER = 4


@dataclass(frozen=True)
class QuerySuccess:
    """Time reported by a source, with whatever the query learned about it."""

    observed_time: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QueryFailure:
    """A query that did not produce a timestamp."""

    error: str


QueryOutcome = Union[QuerySuccess, QueryFailure]


class TimeSourceClient(Protocol):
    """Interface for anything that can ask a source for the current time."""

    def query(self, address: str) -> QueryOutcome:
        """Return the source's time, or a failure; must not raise."""


class SntpClient:
    """Single-shot SNTP client (RFC 4330 client mode over UDP)."""

    def __init__(self, port: int = NTP_PORT, timeout: float = 2.0, logger: logging.Logger | None = None) -> None:
        self._port = port
        self._timeout = timeout
        self._logger = logger or logging.getLogger(__name__)

    def query(self, address: str) -> QueryOutcome:
        # LI=0, VN=3, Mode=3 (client).
        packet = b"\x1b" + 47 * b"\0"
        sent = time.monotonic()
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.settimeout(self._timeout)
                sock.sendto(packet, (address, self._port))
                data, _ = sock.recvfrom(1024)
        except socket.timeout:
            return QueryFailure(error=f"timeout after {self._timeout:g}s")
        except socket.gaierror as exc:
            return QueryFailure(error=f"unreachable: cannot resolve {address} ({exc.strerror or exc})")
        except OSError as exc:
            return QueryFailure(error=f"unreachable: {exc.strerror or exc}")
        round_trip_ms = (time.monotonic() - sent) * 1000.0

        try:
            return _parse_response(address, data, round_trip_ms)
        except ValueError as exc:
            self._logger.debug("sntp_malformed_response", extra={"host": address, "error": str(exc)})
            return QueryFailure(error=f"malformed response: {exc}")


class FacadeClient:
    """Client that asks a running HTTP facade (`/api/ntp`) for the time."""

    def __init__(self, base_url: str, timeout: float = 5.0, session: requests.Session | None = None) -> None:
        self._url = base_url.rstrip("/") + "/api/ntp"
        self._timeout = timeout
        self._session = session or requests.Session()

    def query(self, address: str) -> QueryOutcome:
        try:
            response = self._session.get(self._url, params={"host": address}, timeout=self._timeout)
        except requests.Timeout:
            return QueryFailure(error=f"timeout after {self._timeout:g}s")
        except requests.RequestException as exc:
            return QueryFailure(error=f"unreachable: {exc}")

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if not response.ok:
            if isinstance(payload, dict) and payload.get("error"):
                return QueryFailure(error=str(payload["error"]))
            return QueryFailure(error=f"API error (HTTP {response.status_code})")
        if not isinstance(payload, dict) or "time" not in payload:
            return QueryFailure(error="malformed response: missing time")
        try:
            observed = parse_iso_time(str(payload["time"]))
        except ValueError as exc:
            return QueryFailure(error=f"malformed response: {exc}")
        return QuerySuccess(observed_time=observed, metadata={"host": address})


def _parse_response(address: str, data: bytes, round_trip_ms: float) -> QuerySuccess:
    if len(data) < _NTP_PACKET_LEN:
        raise ValueError(f"packet too short ({len(data)} bytes)")
    leap = data[0] >> 6
    mode = data[0] & 0x7
    stratum = data[1]
    if mode != _MODE_SERVER:
        raise ValueError(f"unexpected mode {mode}")
    reference_id = data[12:16]
    if stratum == 0:
        code = reference_id.decode("ascii", errors="replace").strip("\0")
        raise ValueError(f"kiss-o'-death {code or 'unspecified'}")
    transmit = _ntp_to_unix(data[40:48])
    if transmit <= 0:
        raise ValueError("zero transmit timestamp")
    return QuerySuccess(
        observed_time=datetime.fromtimestamp(transmit, tz=timezone.utc),
        metadata={
            "host": address,
            "stratum": stratum,
            "leap": leap,
            "reference_id": _format_reference_id(reference_id, stratum),
            "round_trip_ms": round(round_trip_ms, 3),
        },
    )


def _ntp_to_unix(data: bytes) -> float:
    seconds, fraction = struct.unpack("!II", data)
    if seconds == 0 and fraction == 0:
        return 0.0
    return seconds - NTP_EPOCH + fraction / 2**32


def _format_reference_id(raw: bytes, stratum: int) -> str:
    # Stratum 1 carries an ASCII clock code; higher strata carry an IPv4 address.
    if stratum == 1:
        return raw.decode("ascii", errors="replace").strip("\0")
    return socket.inet_ntoa(raw)


def parse_iso_time(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""

    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
