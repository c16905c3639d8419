from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

from adb_host.transport.tcp_transport_async import TcpTransportAsync

from .patchers import SimulatedConnectionLogic


def async_mock_open(read_data=""):
    class AsyncMockFile:
        def __init__(self, read_data):
            self.read_data = read_data
            _async_mock_open.written = read_data[:0]

        async def read(self, size=-1):
            if size == -1:
                ret = self.read_data
                self.read_data = self.read_data[:0]
                return ret

            n = min(size, len(self.read_data))
            ret = self.read_data[:n]
            self.read_data = self.read_data[n:]
            return ret

        async def write(self, b):
            if _async_mock_open.written:
                _async_mock_open.written += b
            else:
                _async_mock_open.written = b

        async def seekable(self):
            return True

    @asynccontextmanager
    async def _async_mock_open(*args, **kwargs):
        try:
            yield AsyncMockFile(read_data)
        finally:
            pass

    return _async_mock_open


class FakeStreamWriter:
    def close(self):
        pass

    async def wait_closed(self):
        pass

    def write(self, data):
        pass

    async def drain(self):
        pass


class FakeStreamReader:
    async def read(self, numbytes):
        return b'TEST'


class FakeTcpTransportAsync(TcpTransportAsync):
    def __init__(self, *args, **kwargs):
        TcpTransportAsync.__init__(self, *args, **kwargs)
        self.bulk_read_data = b''
        self.bulk_write_data = b''

    async def close(self):
        self._reader = None
        self._writer = None

    async def connect(self, transport_timeout_s=None):
        self._reader = True
        self._writer = True

    async def bulk_read(self, numbytes, transport_timeout_s=None):
        ret = self.bulk_read_data[:numbytes]
        self.bulk_read_data = self.bulk_read_data[numbytes:]
        return ret

    async def bulk_write(self, data, transport_timeout_s=None):
        self.bulk_write_data += data
        return len(data)


class SimulatedTransportAsync(TcpTransportAsync):
    def __init__(self, server):
        TcpTransportAsync.__init__(self)
        self.logic = SimulatedConnectionLogic(server)
        self.closed = False

    @property
    def requests(self):
        return self.logic.requests

    async def close(self):
        self.closed = True

    async def connect(self, transport_timeout_s=None):
        self.closed = False

    async def bulk_read(self, numbytes, transport_timeout_s=None):
        return self.logic.read(numbytes)

    async def bulk_write(self, data, transport_timeout_s=None):
        self.logic.write(data)
        return len(data)


def simulated_transport_async_factory(server):
    def _factory(*args, **kwargs):  # pylint: disable=unused-argument
        transport = SimulatedTransportAsync(server)
        server.transports.append(transport)
        return transport

    return _factory


def async_patch(*args, **kwargs):
    return patch(*args, new_callable=AsyncMock, **kwargs)
