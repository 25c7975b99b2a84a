import logging

import pytest

from failover.failover import ServerFailover
from time_sync.config import ServerEndpoint


@pytest.fixture
def servers():
    return [
        ServerEndpoint('foo.bar.com'),
        ServerEndpoint('bar.baz.gov', 666),
        ServerEndpoint('a.b.c'),
        ServerEndpoint('acb.xyz.def.uvw'),
    ]


def test_starts_at_first_server(servers):
    failover = ServerFailover(servers)
    assert failover.current_index == 0
    assert failover.current_server == servers[0]


def test_cycling_wraps_around(servers):
    failover = ServerFailover(servers, cycle=True)
    failover.advance()
    failover.advance()
    assert failover.current_index == 2
    assert failover.current_server == servers[2]

    failover.advance()
    failover.advance()
    failover.advance()
    assert failover.current_index == 1
    assert failover.current_server.port == 666


def test_cycling_returns_to_start_after_full_lap(servers):
    failover = ServerFailover(servers, cycle=True)
    for _ in range(len(servers)):
        failover.advance()
    assert failover.current_index == 0


def test_holding_stops_at_last_server(servers):
    failover = ServerFailover(servers, cycle=False)
    for _ in range(len(servers) - 1):
        failover.advance()
    assert failover.current_index == len(servers) - 1

    for _ in range(5):
        assert failover.advance() == servers[-1]
    assert failover.current_index == len(servers) - 1


@pytest.mark.parametrize("cycle", [True, False])
def test_single_server_never_moves(cycle):
    failover = ServerFailover([ServerEndpoint('only.one')], cycle=cycle)
    for _ in range(3):
        failover.advance()
    assert failover.current_index == 0


def test_empty_server_list_is_rejected():
    with pytest.raises(ValueError):
        ServerFailover([])


def test_shift_is_logged_at_info(servers, caplog):
    failover = ServerFailover(servers)
    with caplog.at_level(logging.INFO, logger="Failover"):
        failover.advance()

    shifts = [r for r in caplog.records if "Shifting to backup server" in r.getMessage()]
    assert len(shifts) == 1
    assert shifts[0].levelno == logging.INFO
    assert "bar.baz.gov:666" in shifts[0].getMessage()
