import os
import subprocess
import unittest
from unittest.mock import patch

from adb_host import constants, exceptions
from adb_host.adb_connection import AdbConnection
from adb_host.adb_server import AdbServer, AdbServerStatus

from . import patchers


class TestAdbServer(unittest.TestCase):
    def setUp(self):
        self.server = AdbServer(adb_path='/opt/platform-tools/adb', host='127.0.0.1', port=5037)
        self.transport = patchers.FakeTcpTransport()

    def patch_connection(self):
        return patch.object(self.server, '_create_connection', return_value=AdbConnection(self.transport))

    def test_endpoint_from_environment(self):
        with patch.dict(os.environ, {constants.SERVER_PORT_ENV: '5038'}, clear=True):
            server = AdbServer()

        self.assertEqual((server.host, server.port), (constants.DEFAULT_HOST, 5038))
        self.assertEqual(server.adb_path, constants.DEFAULT_ADB_PATH)

    def test_get_status_running(self):
        self.transport.bulk_read_data = patchers.okay('0029')
        with self.patch_connection():
            self.assertEqual(self.server.get_status(), AdbServerStatus(True, 41))

        self.assertEqual(self.transport.bulk_write_data, b'000Chost:version')

    def test_get_status_not_running(self):
        with patch('socket.create_connection', side_effect=ConnectionRefusedError):
            self.assertEqual(self.server.get_status(), AdbServerStatus(False, None))

    def test_get_status_reset(self):
        self.transport.bulk_read_data = b'OK'
        with self.patch_connection():
            self.assertEqual(self.server.get_status(), AdbServerStatus(False, None))

    def test_kill_server(self):
        with self.patch_connection():
            self.server.kill_server()

        self.assertEqual(self.transport.bulk_write_data, b'0009host:kill')
        self.assertIsNone(self.transport._connection)

    def test_kill_server_not_running(self):
        with patch('socket.create_connection', side_effect=ConnectionRefusedError):
            self.server.kill_server()

    def test_start_server(self):
        with patch('subprocess.run') as run:
            self.server.start_server()

        run.assert_called_once_with(['/opt/platform-tools/adb', '-P', '5037', 'start-server'], stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                                    timeout=constants.DEFAULT_SERVER_START_TIMEOUT_S, check=True)

    def test_start_server_fails(self):
        error = subprocess.CalledProcessError(1, 'adb', output=b'cannot bind listener\n')
        with patch('subprocess.run', side_effect=error):
            with self.assertRaises(exceptions.AdbServerError) as cm:
                self.server.start_server()

        self.assertIn('exited with code 1: cannot bind listener', str(cm.exception))

    def test_start_server_timeout(self):
        with patch('subprocess.run', side_effect=subprocess.TimeoutExpired('adb', 30.)):
            with self.assertRaises(exceptions.AdbServerError):
                self.server.start_server()

    def test_start_server_not_installed(self):
        with patch('subprocess.run', side_effect=FileNotFoundError(2, 'No such file or directory')):
            with self.assertRaises(exceptions.AdbServerError):
                self.server.start_server()

    def test_restart_server(self):
        with patch.object(self.server, 'kill_server') as kill_server, patch.object(self.server, 'start_server') as start_server:
            self.server.restart_server()

        kill_server.assert_called_once_with()
        start_server.assert_called_once_with()
