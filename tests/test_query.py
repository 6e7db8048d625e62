import pytest

from sockmap.errors import QueryError
from sockmap.models import ConnectionRecord, Endpoint
from sockmap.query import MAX_DEPTH, filter_records, is_valid_query, parse_query, tokenize

CHROME = ConnectionRecord(
    protocol="tcp",
    local=Endpoint("127.0.0.1", 8080),
    remote=Endpoint("1.1.1.1", 443),
    state="ESTABLISHED",
    pid=1234,
    process_name="chrome.exe",
)

LISTENER = ConnectionRecord(
    protocol="tcp",
    local=Endpoint(None, 80),
    remote=Endpoint(None, 0),
    state="LISTEN",
    pid=4,
    process_name="System",
)

RESOLVER = ConnectionRecord(
    protocol="udp6",
    local=Endpoint(None, 5353),
    remote=Endpoint(None, None),
    state="",
    pid=0,
    process_name="",
)


@pytest.mark.parametrize("text, valid", [
    ("pid=123", True),
    ("pid = 123", True),
    ('process="chrome"', True),
    ("pid=123 && state=LISTEN", True),
    ("pid=123 AND state=LISTEN or pid=5", True),
    ("(pid=1 || pid=2) && !proto=udp", True),
    ("invalid", False),
    ("pid=", False),
    ("(pid=1", False),
    ("pid=1 pid=2", False),
    ("", False),
    ("   ", False),
])
def test_is_valid_query(text, valid):
    assert is_valid_query(text) is valid


def test_parse_query_raises_on_syntax_error():
    with pytest.raises(QueryError):
        parse_query("state=")


def test_tokens():
    kinds = [t.kind for t in tokenize("!(pid>=10 || name:'a b') && lport=443")]
    assert kinds == ["not", "lparen", "word", "op", "number", "or", "word", "op", "string",
                     "rparen", "and", "word", "op", "number", "eof"]


def test_filter_by_pid():
    f = parse_query("pid=1234")
    assert f(CHROME)
    assert not f(LISTENER)


def test_filter_by_process_name():
    assert parse_query('process="chrome.exe"')(CHROME)
    assert parse_query("process=System")(LISTENER)


def test_filter_by_ports():
    assert parse_query("lport=8080")(CHROME)
    assert not parse_query("lport=9999")(CHROME)
    assert parse_query("rport=443")(CHROME)
    assert parse_query("localport>=8080")(CHROME)


def test_absent_port_never_matches():
    assert not parse_query("rport=0")(RESOLVER)
    assert not parse_query("rport!=0")(RESOLVER)
    assert parse_query("!rport=0")(RESOLVER)


def test_logical_and_or():
    assert parse_query("pid=1234 && protocol=tcp")(CHROME)
    assert not parse_query("pid=1234 && protocol=udp")(CHROME)
    f = parse_query("pid=9999 || pid=1234")
    assert f(CHROME)
    assert not f(LISTENER)


def test_parentheses_and_not():
    f = parse_query("(pid=1234 || pid=4) && state=LISTEN")
    assert not f(CHROME)
    assert f(LISTENER)
    g = parse_query("!state=LISTEN")
    assert g(CHROME)
    assert not g(LISTENER)


def test_and_binds_tighter_than_or():
    f = parse_query("pid=4 || pid=1234 && state=LISTEN")
    assert f(LISTENER)
    assert not f(CHROME)


def test_ordering_comparisons():
    assert parse_query("pid > 1000")(CHROME)
    assert not parse_query("pid < 100")(CHROME)


def test_wildcards_and_case():
    assert parse_query("process=chrom*")(CHROME)
    assert parse_query("process=*exe")(CHROME)
    assert parse_query("laddr=127.0.0.*")(CHROME)
    assert not parse_query("laddr=127.0.0.2*")(CHROME)
    assert parse_query("STATE=established")(CHROME)


def test_wildcard_addresses_compare_as_unspecified():
    assert parse_query("laddr=0.0.0.0")(LISTENER)
    assert parse_query('laddr="[::]"')(RESOLVER)
    assert parse_query("raddr=0.0.0.0")(LISTENER)


def test_unknown_field_is_false():
    assert not parse_query("color=red")(CHROME)


def test_number_against_text_field():
    assert not parse_query("proto=6")(CHROME)
    assert parse_query("proto!=6")(CHROME)


def test_filter_records():
    records = [CHROME, LISTENER, RESOLVER]
    assert filter_records(records, "") == records
    assert filter_records(records, None) == records
    assert filter_records(records, "proto=udp*") == [RESOLVER]
    with pytest.raises(QueryError):
        filter_records(records, "pid=")


@pytest.mark.parametrize("text", ["!" * 5000 + "pid=1", "(" * 5000 + "pid=1" + ")" * 5000])
def test_deep_nesting_is_a_query_error(text):
    assert is_valid_query(text) is False
    with pytest.raises(QueryError, match="nested deeper"):
        parse_query(text)


def test_nesting_up_to_the_limit_is_accepted():
    depth = MAX_DEPTH
    f = parse_query("(" * depth + "pid=1234" + ")" * depth)
    assert f(CHROME)
    assert parse_query("!!pid=4")(LISTENER)


def test_long_flat_chains_evaluate():
    assert parse_query(" || ".join(["pid=1"] * 3000 + ["pid=1234"]))(CHROME)
    assert not parse_query(" && ".join(["proto=tcp"] * 3000 + ["pid=1"]))(CHROME)
