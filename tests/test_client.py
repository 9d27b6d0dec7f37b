import socket
import struct
import threading
from datetime import datetime, timezone

import pytest
import requests

from ntp_diff_show.client import (
    NTP_EPOCH,
    FacadeClient,
    QueryFailure,
    QuerySuccess,
    SntpClient,
    _parse_response,
    parse_iso_time,
)

OBSERVED = datetime(2024, 3, 4, 5, 6, 7, 500000, tzinfo=timezone.utc)


def _server_packet(when: datetime, stratum: int = 2, mode: int = 4, reference: bytes = bytes([192, 0, 2, 1])) -> bytes:
    seconds = int(when.timestamp())
    fraction = int((when.timestamp() - seconds) * 2**32)
    header = bytes([(4 << 3) | mode, stratum, 6, 0xEC]) + 8 * b"\0" + reference
    timestamps = 16 * b"\0" + 8 * b"\0" + struct.pack("!II", seconds + NTP_EPOCH, fraction)
    return header + timestamps


def test_parse_response_reads_transmit_time_and_metadata() -> None:
    result = _parse_response("ntp.example", _server_packet(OBSERVED), round_trip_ms=12.0)
    assert abs((result.observed_time - OBSERVED).total_seconds()) < 1e-6
    assert result.metadata == {
        "host": "ntp.example",
        "stratum": 2,
        "leap": 0,
        "reference_id": "192.0.2.1",
        "round_trip_ms": 12.0,
    }


def test_parse_response_stratum_one_reference_is_ascii() -> None:
    result = _parse_response("ntp.example", _server_packet(OBSERVED, stratum=1, reference=b"GPS\0"), 1.0)
    assert result.metadata["reference_id"] == "GPS"


@pytest.mark.parametrize(
    "packet",
    [
        b"\x24" * 20,
        _server_packet(OBSERVED, mode=3),
        _server_packet(OBSERVED, stratum=0, reference=b"RATE"),
        _server_packet(OBSERVED)[:40] + 8 * b"\0",
    ],
)
def test_parse_response_rejects_malformed_packets(packet: bytes) -> None:
    with pytest.raises(ValueError):
        _parse_response("ntp.example", packet, 1.0)


class FakeNtpServer:
    """Loopback UDP responder; replies with a fixed packet or stays silent."""

    def __init__(self, reply: bytes | None) -> None:
        self._reply = reply
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.settimeout(2.0)
        self.port = self._sock.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)

    def __enter__(self) -> "FakeNtpServer":
        self._thread.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self._thread.join(timeout=3.0)
        self._sock.close()

    def _serve(self) -> None:
        try:
            data, addr = self._sock.recvfrom(1024)
        except OSError:
            return
        if self._reply is not None and data[0] & 0x7 == 3:
            self._sock.sendto(self._reply, addr)


def test_sntp_client_against_loopback_server() -> None:
    with FakeNtpServer(_server_packet(OBSERVED)) as server:
        outcome = SntpClient(port=server.port, timeout=2.0).query("127.0.0.1")
    assert isinstance(outcome, QuerySuccess)
    assert abs((outcome.observed_time - OBSERVED).total_seconds()) < 1e-6
    assert outcome.metadata["host"] == "127.0.0.1"
    assert outcome.metadata["round_trip_ms"] >= 0.0


def test_sntp_client_timeout_is_a_failure() -> None:
    with FakeNtpServer(None) as server:
        outcome = SntpClient(port=server.port, timeout=0.2).query("127.0.0.1")
    assert isinstance(outcome, QueryFailure)
    assert outcome.error.startswith("timeout")


def test_sntp_client_malformed_reply_is_a_failure() -> None:
    with FakeNtpServer(b"\x24\x02") as server:
        outcome = SntpClient(port=server.port, timeout=2.0).query("127.0.0.1")
    assert isinstance(outcome, QueryFailure)
    assert outcome.error.startswith("malformed response")


def test_sntp_client_unresolvable_host_is_a_failure() -> None:
    outcome = SntpClient(timeout=0.5).query("no-such-host.invalid")
    assert isinstance(outcome, QueryFailure)
    assert outcome.error.startswith(("unreachable", "timeout"))


class FakeResponse:
    def __init__(self, status_code: int, payload: object) -> None:
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._payload = payload

    def json(self) -> object:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, response: FakeResponse | Exception) -> None:
        self._response = response
        self.calls: list[tuple[str, dict[str, str]]] = []

    def get(self, url: str, params: dict[str, str], timeout: float) -> FakeResponse:
        self.calls.append((url, params))
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def test_facade_client_success() -> None:
    session = FakeSession(FakeResponse(200, {"time": "2024-03-04T05:06:07.500Z", "host": "ntp.nict.jp"}))
    client = FacadeClient("http://localhost:3001/", session=session)  # type: ignore[arg-type]
    outcome = client.query("ntp.nict.jp")
    assert outcome == QuerySuccess(observed_time=OBSERVED, metadata={"host": "ntp.nict.jp"})
    assert session.calls == [("http://localhost:3001/api/ntp", {"host": "ntp.nict.jp"})]


@pytest.mark.parametrize(
    ("response", "expected"),
    [
        (FakeResponse(500, {"error": "Timeout"}), "Timeout"),
        (FakeResponse(502, ValueError("no json")), "API error (HTTP 502)"),
        (FakeResponse(200, {"host": "x"}), "malformed response: missing time"),
        (requests.ConnectionError("refused"), "unreachable: refused"),
        (requests.Timeout("slow"), "timeout after 5s"),
    ],
)
def test_facade_client_failures(response: object, expected: str) -> None:
    client = FacadeClient("http://localhost:3001", session=FakeSession(response))  # type: ignore[arg-type]
    assert client.query("ntp.nict.jp") == QueryFailure(error=expected)


def test_parse_iso_time_variants() -> None:
    assert parse_iso_time("2024-03-04T05:06:07.500Z") == OBSERVED
    assert parse_iso_time("2024-03-04T05:06:07.500") == OBSERVED
    assert parse_iso_time("2024-03-04T14:06:07.500+09:00") == OBSERVED
