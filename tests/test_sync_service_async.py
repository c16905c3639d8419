import asyncio
from io import BytesIO
import unittest

from adb_host import constants, exceptions
from adb_host.adb_connection_async import AdbConnectionAsync
from adb_host.device_data import DeviceData
from adb_host.sync_service_async import SyncServiceAsync

from . import patchers
from .async_patchers import FakeTcpTransportAsync, async_mock_open, simulated_transport_async_factory
from .async_wrapper import awaiter
from .filesync_helpers import FileSyncMessage, FileSyncStatMessage, join_messages


class TestSyncServiceAsync(unittest.TestCase):
    def setUp(self):
        self.server = patchers.SimulatedAdbServer()
        self.transport_factory = simulated_transport_async_factory(self.server)

    async def _open(self, serial=patchers.SERIAL):
        sync = SyncServiceAsync(AdbConnectionAsync(self.transport_factory()), DeviceData(serial))
        await sync.open()
        return sync

    @awaiter
    async def test_open_close(self):
        sync = await self._open()
        self.assertTrue(sync.is_open)
        self.assertEqual(self.server.requests(), ['host:transport:emulator-5554', 'sync:'])

        await sync.close()
        self.assertFalse(sync.is_open)
        self.assertTrue(self.server.transports[0].closed)
        self.assertEqual(self.server.transports[0].logic.mode, 'done')

    @awaiter
    async def test_open_device_not_found(self):
        with self.assertRaises(exceptions.DeviceNotFoundError):
            await self._open('emulator-5556')

    @awaiter
    async def test_context_manager(self):
        async with SyncServiceAsync(AdbConnectionAsync(self.transport_factory()), DeviceData(patchers.SERIAL)) as sync:
            await sync.push(BytesIO(b'TEST'), '/sdcard/test.txt')

        self.assertFalse(sync.is_open)
        self.assertEqual(self.server.files['/sdcard/test.txt'].data, b'TEST')

    @awaiter
    async def test_push_pull(self):
        sync = await self._open()
        for size in [0, 1000, 65529, 200000]:
            data = bytes(bytearray(i % 256 for i in range(size)))
            remote_path = '/sdcard/file{}.bin'.format(size)

            await sync.push(BytesIO(data), remote_path, timestamp=1600000000)
            self.assertEqual(self.server.files[remote_path].data, data)

            stream = BytesIO()
            await sync.pull(remote_path, stream)
            self.assertEqual(stream.getvalue(), data)

        await sync.close()

    @awaiter
    async def test_push_pull_async_file(self):
        sync = await self._open()

        async with async_mock_open(b'\x00' * 70000)() as stream:
            percentages = []
            await sync.push(stream, '/sdcard/zeros.bin', progress_callback=percentages.append)

        # The size of an async file is not known
        self.assertEqual(percentages, [])
        self.assertEqual(self.server.data_frame_sizes, [65528, 4472])

        open_func = async_mock_open()
        async with open_func() as stream:
            await sync.pull('/sdcard/zeros.bin', stream)

        self.assertEqual(open_func.written, b'\x00' * 70000)
        await sync.close()

    @awaiter
    async def test_push_path_too_long(self):
        sync = await self._open()
        with self.assertRaises(exceptions.DevicePathTooLongError):
            await sync.push(BytesIO(b'TEST'), '/' + 'a' * 1024)

        await sync.close()

    @awaiter
    async def test_push_fail(self):
        self.server.push_failures['/system/test.txt'] = "couldn't create file: Read-only file system"
        sync = await self._open()

        with self.assertRaises(exceptions.PushFailedError):
            await sync.push(BytesIO(b'TEST'), '/system/test.txt')

        await sync.close()

    @awaiter
    async def test_stat_list(self):
        self.server.add_file('/sdcard/test.txt', b'0123456789', mode=0o100644, mtime=1500000000)
        sync = await self._open()

        self.assertEqual(await sync.stat('/sdcard/test.txt'), ('/sdcard/test.txt', 0o100644, 10, 1500000000))
        self.assertEqual(await sync.list_directory('/sdcard'), [('test.txt', 0o100644, 10, 1500000000)])
        await sync.close()

    @awaiter
    async def test_cancelled(self):
        sync = await self._open()
        cancel_event = asyncio.Event()
        cancel_event.set()

        with self.assertRaises(exceptions.AdbCancelledError):
            await sync.push(BytesIO(b'TEST'), '/sdcard/test.txt', cancel_event=cancel_event)

        self.assertNotIn('/sdcard/test.txt', self.server.files)
        await sync.close()

    @awaiter
    async def test_oversized_data(self):
        transport = FakeTcpTransportAsync()
        transport.bulk_read_data = constants.OKAY + constants.OKAY
        sync = SyncServiceAsync(AdbConnectionAsync(transport), DeviceData(patchers.SERIAL))
        await sync.open()

        trailing = b'\x00' * 16
        transport.bulk_read_data = join_messages(FileSyncStatMessage(constants.DEFAULT_PUSH_MODE, 100000, 0),
                                                 FileSyncMessage(constants.DATA, arg0=constants.MAX_BUFFER_SIZE + 1)) + trailing

        with self.assertRaises(exceptions.InvalidResponseError):
            await sync.pull('/sdcard/big.bin', BytesIO())

        self.assertEqual(transport.bulk_read_data, trailing)
        await sync.close()
