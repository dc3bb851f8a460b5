import socket
from threading import Thread

import pytest

from alarms.tcp_server import CommandServer


@pytest.fixture
def server(context):
    server = CommandServer(("127.0.0.1", 0), context)
    thread = Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def test_line_protocol_session(server, context):
    context.set_sound_timer(12)
    with socket.create_connection(server.server_address, timeout=5) as sock:
        stream = sock.makefile("rwb")
        assert stream.readline() == b"connected to test\n"

        stream.write(b"timer?\n")
        stream.flush()
        assert stream.readline() == b"command: OK\n"
        assert stream.readline() == b"12\n"

        stream.write(b"foo\n")
        stream.flush()
        assert stream.readline() == b"command: ERROR\n"
        assert stream.readline() == b"Unknown command foo\n"

        stream.write(b"x" * 120 + b"\n")
        stream.flush()
        assert stream.readline() == b"command: ERROR\n"
        assert b"max. length" in stream.readline()

        stream.write(b"exit\n")
        stream.flush()
        assert stream.read() == b"command: "


def test_oversized_line_is_discarded(server, context):
    with socket.create_connection(server.server_address, timeout=5) as sock:
        stream = sock.makefile("rwb")
        assert stream.readline() == b"connected to test\n"

        stream.write(b"timer " + b"9" * 100_000 + b"\n")
        stream.flush()
        assert stream.readline() == b"command: ERROR\n"
        assert stream.readline() == b"message exceeds max. length of 100\n"
        assert context.get_sound_timer() == 0

        stream.write(b"timer?\n")
        stream.flush()
        assert stream.readline() == b"command: OK\n"
        assert stream.readline() == b"0\n"
