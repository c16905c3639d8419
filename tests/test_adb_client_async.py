import asyncio
import errno
from io import BytesIO
import unittest
from unittest.mock import patch

from adb_host import constants, exceptions
from adb_host.adb_client_async import AdbClientAsync
from adb_host.device_data import DeviceData
from adb_host.receivers import CallbackOutputReceiver, CollectingOutputReceiver
from adb_host.transport.tcp_transport_async import TcpTransportAsync

from . import patchers
from .async_patchers import FakeStreamWriter, async_mock_open, simulated_transport_async_factory
from .async_wrapper import awaiter


class AsyncReceiver(object):
    def __init__(self):
        self.lines = []
        self.flush_count = 0

    async def add_output(self, line):
        self.lines.append(line)

    async def flush(self):
        self.flush_count += 1


class TestAdbClientAsync(unittest.TestCase):
    def setUp(self):
        self.server = patchers.SimulatedAdbServer()
        self.client = AdbClientAsync(transport_factory=simulated_transport_async_factory(self.server))
        self.device = DeviceData(patchers.SERIAL)

    def tearDown(self):
        self.assertTrue(all(transport.closed for transport in self.server.transports))

    @awaiter
    async def test_create_connection(self):
        connection = await self.client.create_connection()
        self.assertEqual(connection.state, constants.CONNECTION_OPEN)
        await connection.close()

    @awaiter
    async def test_get_adb_version(self):
        self.assertEqual(await self.client.get_adb_version(), 41)
        self.assertEqual(self.server.requests(), ['host:version'])

    @awaiter
    async def test_get_devices(self):
        devices = await self.client.get_devices()
        self.assertEqual([(device.serial, device.state) for device in devices], [('emulator-5554', constants.STATE_ONLINE)])

    @awaiter
    async def test_shell(self):
        self.server.shell_output['ls /sdcard'] = b'Alarms\r\nDCIM\n'
        self.assertEqual(await self.client.shell('ls /sdcard', self.device), 'Alarms\nDCIM')
        self.assertEqual(self.server.requests(), ['host:transport:emulator-5554', 'shell:ls /sdcard'])

    @awaiter
    async def test_execute_remote_command_async_receiver(self):
        self.server.shell_output['ls'] = b'a\nb\n'
        receiver = AsyncReceiver()
        await self.client.execute_remote_command('ls', self.device, receiver)

        self.assertEqual(receiver.lines, ['a', 'b'])
        self.assertEqual(receiver.flush_count, 1)

    @awaiter
    async def test_device_not_found(self):
        receiver = CollectingOutputReceiver()
        with self.assertRaises(exceptions.DeviceNotFoundError):
            await self.client.execute_remote_command('ls', DeviceData('emulator-5556'), receiver)

        self.assertTrue(receiver.flushed)

    @awaiter
    async def test_device_required(self):
        with self.assertRaises(ValueError):
            await self.client.shell('ls', None)

    @awaiter
    async def test_shell_cancelled_by_receiver(self):
        self.server.shell_output['logcat'] = b'line1\nline2\nline3\n'
        cancel_event = asyncio.Event()
        lines = []

        def add_output(line):
            lines.append(line)
            cancel_event.set()

        await self.client.execute_remote_command('logcat', self.device, CallbackOutputReceiver(add_output), cancel_event)
        self.assertEqual(lines, ['line1'])

    @awaiter
    async def test_shell_cancelled_before_start(self):
        self.server.shell_output['logcat'] = b'line1\n'
        cancel_event = asyncio.Event()
        cancel_event.set()

        receiver = CollectingOutputReceiver()
        await self.client.execute_remote_command('logcat', self.device, receiver, cancel_event)
        self.assertEqual(receiver.lines, [])
        self.assertTrue(receiver.flushed)

    @awaiter
    async def test_push_pull_stream(self):
        await self.client.push(self.device, BytesIO(b'TEST'), '/sdcard/test.txt', timestamp=1600000000)
        self.assertEqual(self.server.files['/sdcard/test.txt'], patchers.SimulatedFile(b'TEST', constants.DEFAULT_PUSH_MODE, 1600000000))

        stream = BytesIO()
        await self.client.pull(self.device, '/sdcard/test.txt', stream)
        self.assertEqual(stream.getvalue(), b'TEST')

    @awaiter
    async def test_push_pull_path(self):
        with patch('aiofiles.open', async_mock_open(read_data=b'TEST')):
            await self.client.push(self.device, 'local.txt', '/sdcard/test.txt')

        self.assertEqual(self.server.files['/sdcard/test.txt'].data, b'TEST')

        with patch('aiofiles.open', async_mock_open()) as m:
            await self.client.pull(self.device, '/sdcard/test.txt', 'local.txt')

        self.assertEqual(m.written, b'TEST')

    @awaiter
    async def test_stat_list_directory(self):
        self.server.add_file('/sdcard/test.txt', b'0123456789', mtime=1500000000)
        self.assertEqual((await self.client.stat(self.device, '/sdcard/test.txt')).size, 10)
        self.assertEqual([f.path for f in await self.client.list_directory(self.device, '/sdcard')], ['test.txt'])

    @awaiter
    async def test_create_sync_service_device_not_found(self):
        with self.assertRaises(exceptions.DeviceNotFoundError):
            await self.client.create_sync_service(DeviceData('emulator-5556'))


class UnreachableStreamReader(object):
    def __init__(self, data):
        self.data = data

    async def read(self, numbytes):
        if not self.data:
            raise OSError(errno.EHOSTUNREACH, 'No route to host')

        ret = self.data[:numbytes]
        self.data = self.data[numbytes:]
        return ret


class UnreachableTransportAsync(TcpTransportAsync):
    async def connect(self, transport_timeout_s=None):
        self._reader = UnreachableStreamReader(constants.OKAY + constants.OKAY + b'line1\n')
        self._writer = FakeStreamWriter()


class TestAdbClientAsyncUnreachable(unittest.TestCase):
    @awaiter
    async def test_shell_unresponsive(self):
        client = AdbClientAsync(transport_factory=UnreachableTransportAsync)
        receiver = CollectingOutputReceiver()

        with self.assertRaises(exceptions.ShellCommandUnresponsiveError) as cm:
            await client.execute_remote_command('logcat', DeviceData(patchers.SERIAL), receiver)

        self.assertIsInstance(cm.exception.__cause__, exceptions.AdbConnectionError)
        self.assertEqual(receiver.lines, ['line1'])
        self.assertTrue(receiver.flushed)
