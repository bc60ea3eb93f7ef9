import pytest

from netnavigator import InvalidConfig
from netnavigator.parsing import TargetParser, parse_ports


@pytest.fixture
def parser():
    return TargetParser()


@pytest.mark.parametrize("value, expected", [
    ("example.test", ("example.test", [])),
    ("example.test:22,80", ("example.test", [22, 80])),
    ("192.168.1.10:8000-8002", ("192.168.1.10", [8000, 8001, 8002])),
    ("::1", ("::1", [])),
    ("[fe80::1]:80,443", ("fe80::1", [80, 443])),
    ("[2001:db8::1]", ("2001:db8::1", [])),
    ("my_host.local:443,80,443", ("my_host.local", [80, 443])),
])
def test_parse_target(parser, value, expected):
    assert parser.parse_target(value) == expected


@pytest.mark.parametrize("value", [
    "[fe80::1:80",
    "[fe80::1]x",
    "example.test:",
    "example.test:http",
    "example.test:0",
    "example.test:70000",
    "bad host!",
    "-leading.example.test",
    "double..dot.example.test",
    "a" * 64 + ".example.test",
])
def test_invalid_targets(parser, value):
    with pytest.raises(InvalidConfig):
        parser.parse_target(value)


def test_default_ports_are_merged():
    assert TargetParser(default_ports=[443, 80]).parse_target("example.test:22") == ("example.test", [22, 80, 443])


def test_parse_targets_removes_duplicates(parser):
    text = """
        example.test:80
        example.test:80
        localhost
        127.0.0.1
        192.0.2.1 192.0.2.2
    """
    assert parser.parse_targets(text) == [
        ("example.test", [80]),
        ("localhost", []),
        ("192.0.2.1", []),
        ("192.0.2.2", []),
    ]


def test_parse_ports():
    assert parse_ports("80, 22,8000-8002,22") == [22, 80, 8000, 8001, 8002]


@pytest.mark.parametrize("value", ["", ",", "10-5", "1-65536", "abc", "0"])
def test_parse_ports_rejects(value):
    with pytest.raises(InvalidConfig):
        parse_ports(value)
