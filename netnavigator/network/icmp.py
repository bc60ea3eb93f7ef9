"""
ICMP echo over raw sockets, for callers with the privileges to open them.
"""
import os
import random
import selectors
import socket
import struct
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from ..context import ProbeContext
from .utils import Address

ICMP_ECHO_REPLY = 0
ICMP_DEST_UNREACHABLE = 3
ICMP_ECHO_REQUEST = 8
ICMPV6_DEST_UNREACHABLE = 1
ICMPV6_ECHO_REQUEST = 128
ICMPV6_ECHO_REPLY = 129


@dataclass
class ICMPPacket:
    type: int
    code: int
    identifier: int
    sequence: int
    payload: bytes = b""

    def pack(self) -> bytes:
        header = struct.pack('!BBHHH', self.type, self.code, 0, self.identifier, self.sequence)
        checksum = calculate_checksum(header + self.payload)
        header = struct.pack('!BBHHH', self.type, self.code, checksum, self.identifier, self.sequence)
        return header + self.payload


def calculate_checksum(data: bytes) -> int:
    """RFC 1071 internet checksum."""
    if len(data) % 2:
        data += b'\x00'
    res = sum(struct.unpack('!%dH' % (len(data) // 2), data))
    res = (res >> 16) + (res & 0xffff)
    res += res >> 16
    return ~res & 0xffff


class EchoStatus(Enum):
    REPLY = auto()
    UNREACHABLE = auto()
    IGNORED = auto()


def parse_reply(data: bytes, identifier: int, ipv6: bool) -> EchoStatus:
    """
    Classifies a datagram read from a raw ICMP socket.

    IPv4 raw sockets deliver the IP header first; ICMPv6 sockets do not.
    Destination-unreachable messages quote the original echo request, whose
    identifier must match ours.
    """
    if not ipv6:
        if len(data) < 20:
            return EchoStatus.IGNORED
        data = data[(data[0] & 0x0f) * 4:]
    if len(data) < 8:
        return EchoStatus.IGNORED
    icmp_type, _code, _checksum, ident, _seq = struct.unpack('!BBHHH', data[:8])

    echo_reply = ICMPV6_ECHO_REPLY if ipv6 else ICMP_ECHO_REPLY
    unreachable = ICMPV6_DEST_UNREACHABLE if ipv6 else ICMP_DEST_UNREACHABLE
    if icmp_type == echo_reply:
        return EchoStatus.REPLY if ident == identifier else EchoStatus.IGNORED
    if icmp_type == unreachable:
        quoted = data[8:]
        if ipv6:
            # 40 byte IPv6 header, then the quoted ICMPv6 header
            quoted = quoted[40:]
        elif quoted:
            quoted = quoted[(quoted[0] & 0x0f) * 4:]
        if len(quoted) >= 8 and struct.unpack('!H', quoted[4:6])[0] == identifier:
            return EchoStatus.UNREACHABLE
    return EchoStatus.IGNORED


class ICMPPinger:
    """Sends one echo request and waits for the matching reply."""

    def __init__(self, identifier: Optional[int] = None):
        self.identifier = identifier if identifier is not None else (os.getpid() ^ random.randint(0, 0xffff)) & 0xffff
        self.sequence = random.randint(0, 0xffff)

    def ping(self, address: Address, ctx: ProbeContext) -> EchoStatus:
        """
        Returns REPLY or UNREACHABLE. Raises ProbeTimeout if nothing matched
        before the deadline; PermissionError propagates so callers can fall
        back to another strategy.
        """
        family, ip, flowinfo, scopeid = address
        ipv6 = family == socket.AF_INET6
        proto = socket.IPPROTO_ICMPV6 if ipv6 else socket.IPPROTO_ICMP
        packet = ICMPPacket(
            type=ICMPV6_ECHO_REQUEST if ipv6 else ICMP_ECHO_REQUEST,
            code=0,
            identifier=self.identifier,
            sequence=self.sequence,
            payload=struct.pack('!d', ctx.started),
        )
        dest = (ip, 0, flowinfo, scopeid) if ipv6 else (ip, 0)

        with socket.socket(family, socket.SOCK_RAW, proto) as sock, selectors.DefaultSelector() as selector:
            sock.setblocking(False)
            try:
                sock.sendto(packet.pack(), dest)
            except PermissionError:
                raise
            except OSError:
                return EchoStatus.UNREACHABLE
            selector.register(sock, selectors.EVENT_READ)
            while True:
                ctx.check()
                if not selector.select(ctx.next_wait()):
                    continue
                try:
                    data, _addr = sock.recvfrom(2048)
                except BlockingIOError:
                    continue
                status = parse_reply(data, self.identifier, ipv6)
                if status is not EchoStatus.IGNORED:
                    return status
