import threading
import unittest

from adb_host import constants
from adb_host.adb_connection import AdbConnection
from adb_host.exceptions import AdbCommandFailureException, AdbConnectionError, AdbConnectionResetError, DeviceNotFoundError, InvalidResponseError

from . import patchers


class TestAdbConnection(unittest.TestCase):
    def setUp(self):
        self.transport = patchers.FakeTcpTransport()
        self.connection = AdbConnection(self.transport)
        self.connection.connect()

    def tearDown(self):
        self.connection.close()

    def test_init_invalid_transport(self):
        with self.assertRaises(AdbConnectionError):
            AdbConnection(transport=123)

    def test_states(self):
        connection = AdbConnection(patchers.FakeTcpTransport())
        self.assertEqual(connection.state, constants.CONNECTION_UNOPENED)

        connection.connect()
        self.assertEqual(connection.state, constants.CONNECTION_OPEN)

        connection.close()
        self.assertEqual(connection.state, constants.CONNECTION_CLOSED)

        # Closing twice is harmless
        connection.close()
        self.assertEqual(connection.state, constants.CONNECTION_CLOSED)

        with self.assertRaises(AdbConnectionError):
            connection.connect()

        with self.assertRaises(AdbConnectionError):
            connection.reconnect()

    def test_context_manager(self):
        transport = patchers.FakeTcpTransport()
        with AdbConnection(transport) as connection:
            self.assertEqual(connection.state, constants.CONNECTION_OPEN)

        self.assertEqual(connection.state, constants.CONNECTION_CLOSED)
        self.assertIsNone(transport._connection)

    def test_send_request(self):
        self.connection.send_request('host:version')
        self.assertEqual(self.transport.bulk_write_data, b'000Chost:version')

    def test_closed_connection_fails_fast(self):
        self.connection.close()

        with self.assertRaises(AdbConnectionError):
            self.connection.send(b'TEST')

        with self.assertRaises(AdbConnectionError):
            self.connection.read(4)

        self.assertEqual(self.transport.bulk_write_data, b'')
        self.assertEqual(self.transport.read_count, 0)

    def test_read_response_okay(self):
        self.transport.bulk_read_data = b'OKAY'
        self.connection.read_response()

    def test_read_response_fail(self):
        self.transport.bulk_read_data = patchers.fail('closed')
        with self.assertRaises(AdbCommandFailureException) as cm:
            self.connection.read_response()

        self.assertEqual(str(cm.exception), 'closed')

    def test_read_response_device_not_found(self):
        self.transport.bulk_read_data = patchers.fail("device 'XYZ' not found")
        with self.assertRaises(DeviceNotFoundError):
            self.connection.read_response()

    def test_read_response_invalid(self):
        self.transport.bulk_read_data = b'WHAT'
        with self.assertRaises(InvalidResponseError):
            self.connection.read_response()

    def test_read_exact(self):
        self.transport.bulk_read_data = b'TEST1TEST2'
        self.assertEqual(self.connection.read(5), b'TEST1')
        self.assertEqual(self.connection.read(5), b'TEST2')

    def test_read_peer_closed(self):
        self.transport.bulk_read_data = b'TES'
        with self.assertRaises(AdbConnectionResetError):
            self.connection.read(4)

    def test_read_string(self):
        self.transport.bulk_read_data = patchers.length_prefixed('emulator-5554\tdevice\n') + patchers.length_prefixed('')
        self.assertEqual(self.connection.read_string(), 'emulator-5554\tdevice\n')
        self.assertEqual(self.connection.read_string(), '')

    def test_read_sync_string(self):
        self.transport.bulk_read_data = patchers.sync_string('No such file or directory')
        self.assertEqual(self.connection.read_sync_string(), 'No such file or directory')

    def test_read_line(self):
        self.transport.bulk_read_data = b'line1\nline2\r\n\nlast'
        self.assertEqual(self.connection.read_line(), b'line1')
        self.assertEqual(self.connection.read_line(), b'line2')
        self.assertEqual(self.connection.read_line(), b'')
        self.assertEqual(self.connection.read_line(), b'last')
        self.assertIsNone(self.connection.read_line())

    def test_read_after_read_line(self):
        self.transport.bulk_read_data = b'line1\nTEST'
        self.assertEqual(self.connection.read_line(), b'line1')
        self.assertEqual(self.connection.read(4), b'TEST')

    def test_buffered_data_after_close(self):
        self.transport.bulk_read_data = b'line1\nline2\nTEST'
        self.assertEqual(self.connection.read_line(), b'line1')
        self.connection.close()

        with self.assertRaises(AdbConnectionError):
            self.connection.read(4)

        with self.assertRaises(AdbConnectionError):
            self.connection.read_line()

    def test_set_device(self):
        self.transport.bulk_read_data = b'OKAY'
        self.connection.set_device('emulator-5554')
        self.assertEqual(self.transport.bulk_write_data, b'001Bhost:transport:emulator-5554')
        self.assertEqual(self.connection.device_serial, 'emulator-5554')

    def test_set_device_after_request(self):
        self.connection.send_request('host:version')
        self.connection.set_device('emulator-5554')
        self.assertEqual(self.transport.bulk_write_data, b'000Chost:version')
        self.assertIsNone(self.connection.device_serial)

    def test_set_device_not_found(self):
        self.transport.bulk_read_data = patchers.fail("device 'XYZ' not found")
        with self.assertRaises(DeviceNotFoundError):
            self.connection.set_device('XYZ')

    def test_reconnect(self):
        self.transport.bulk_read_data = b'OKAY'
        self.connection.set_device('emulator-5554')

        self.connection.reconnect()
        self.assertEqual(self.connection.state, constants.CONNECTION_OPEN)
        self.assertIsNone(self.connection.device_serial)

        # Scoping is allowed again
        self.transport.bulk_read_data = b'OKAY'
        self.transport.bulk_write_data = b''
        self.connection.set_device('emulator-5556')
        self.assertEqual(self.transport.bulk_write_data, b'001Bhost:transport:emulator-5556')


class TestAdbConnectionClose(unittest.TestCase):
    def test_close_unblocks_read(self):
        transport = patchers.BlockingTcpTransport()
        connection = AdbConnection(transport)
        connection.connect()

        errors = []

        def read():
            try:
                connection.read(4)
            except AdbConnectionError as exc:
                errors.append(exc)

        thread = threading.Thread(target=read)
        thread.start()
        self.assertTrue(transport.reading.wait(5))

        connection.close()
        thread.join(5)

        self.assertFalse(thread.is_alive())
        self.assertEqual(len(errors), 1)
        self.assertNotIsInstance(errors[0], AdbConnectionResetError)
