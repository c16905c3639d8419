# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Start, stop, and query the local adb server.

.. rubric:: Contents

* :class:`AdbServer`

    * :meth:`AdbServer._create_connection`
    * :meth:`AdbServer.get_status`
    * :meth:`AdbServer.kill_server`
    * :meth:`AdbServer.restart_server`
    * :meth:`AdbServer.start_server`

* :class:`AdbServerStatus`

"""


from collections import namedtuple
import logging
import subprocess

from . import constants
from . import exceptions
from .adb_connection import AdbConnection
from .adb_request import read_version
from .hidden_helpers import get_server_endpoint
from .transport.tcp_transport import TcpTransport


_LOGGER = logging.getLogger(__name__)


#: ``version`` is the adb server's protocol version, or ``None`` if it is not running
AdbServerStatus = namedtuple('AdbServerStatus', ['is_running', 'version'])


class AdbServer(object):
    """The adb server that listens on ``host:port``.

    Parameters
    ----------
    adb_path : str
        The ``adb`` executable used to start the server
    host : str, None
        The address of the adb server; see :func:`adb_host.hidden_helpers.get_server_endpoint`
    port : int, None
        The port of the adb server; see :func:`adb_host.hidden_helpers.get_server_endpoint`
    start_timeout_s : float
        How long ``adb start-server`` may take
    default_transport_timeout_s : float, None
        Timeout in seconds for the connections used by :meth:`get_status` and :meth:`kill_server`

    Attributes
    ----------
    _default_transport_timeout_s : float, None
        Timeout in seconds for the connections used by :meth:`get_status` and :meth:`kill_server`
    adb_path : str
        The ``adb`` executable used to start the server
    host : str
        The address of the adb server
    port : int
        The port of the adb server
    start_timeout_s : float
        How long ``adb start-server`` may take

    """
    def __init__(self, adb_path=constants.DEFAULT_ADB_PATH, host=None, port=None, start_timeout_s=constants.DEFAULT_SERVER_START_TIMEOUT_S, default_transport_timeout_s=None):
        self.adb_path = adb_path
        self.host, self.port = get_server_endpoint(host, port)
        self.start_timeout_s = start_timeout_s
        self._default_transport_timeout_s = default_transport_timeout_s

    def get_status(self):
        """Ask the adb server for its version.

        Returns
        -------
        AdbServerStatus
            Whether the server is running and, if so, its version

        """
        try:
            with self._create_connection() as conn:
                conn.send_request('host:version')
                conn.read_response()
                version = read_version(conn)

        except exceptions.AdbConnectionError as exc:
            _LOGGER.debug("The adb server at %s:%d is not running: %s", self.host, self.port, exc)
            return AdbServerStatus(False, None)

        return AdbServerStatus(True, version)

    def kill_server(self):
        """Tell the adb server to exit.

        A server that is not running is not an error.

        """
        try:
            with self._create_connection() as conn:
                conn.send_request('host:kill')
        except exceptions.AdbConnectionError as exc:
            _LOGGER.debug("Unable to kill the adb server at %s:%d: %s", self.host, self.port, exc)

    def restart_server(self):
        """Kill the adb server and start it again.

        """
        _LOGGER.info("Restarting the adb server at %s:%d", self.host, self.port)
        self.kill_server()
        self.start_server()

    def start_server(self):
        """Run ``adb -P <port> start-server``, which returns once the server is ready.

        Raises
        ------
        adb_host.exceptions.AdbServerError
            ``adb`` could not be run, timed out, or failed

        """
        command = [self.adb_path, '-P', str(self.port), 'start-server']
        _LOGGER.debug("Running %s", ' '.join(command))

        try:
            subprocess.run(command, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, timeout=self.start_timeout_s, check=True)
        except subprocess.CalledProcessError as exc:
            output = exc.output.decode(constants.DEFAULT_ENCODING, constants.DECODE_ERRORS) if exc.output else ''
            raise exceptions.AdbServerError('`{}` exited with code {}: {}'.format(' '.join(command), exc.returncode, output.strip()))
        except subprocess.TimeoutExpired:
            raise exceptions.AdbServerError('`{}` did not finish within {} seconds'.format(' '.join(command), self.start_timeout_s))
        except OSError as exc:
            raise exceptions.AdbServerError('Unable to run `{}`: {}'.format(self.adb_path, exc))

    def _create_connection(self):
        return AdbConnection(TcpTransport(self.host, self.port), default_transport_timeout_s=self._default_transport_timeout_s)
