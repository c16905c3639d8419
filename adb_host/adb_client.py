# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement the :class:`AdbClient` class, which sends requests to the adb server on behalf of the caller.

Every request uses a new connection to the adb server, which is closed once the request is complete.

.. rubric:: Contents

* :class:`AdbClient`

    * :meth:`AdbClient._new_connection`
    * :meth:`AdbClient._read_restart_reply`
    * :meth:`AdbClient.connect_device`
    * :meth:`AdbClient.create_connection`
    * :meth:`AdbClient.create_device_monitor`
    * :meth:`AdbClient.create_sync_service`
    * :meth:`AdbClient.disconnect_device`
    * :meth:`AdbClient.execute_remote_command`
    * :meth:`AdbClient.get_adb_version`
    * :meth:`AdbClient.get_devices`
    * :meth:`AdbClient.get_features`
    * :meth:`AdbClient.kill_adb`
    * :meth:`AdbClient.list_directory`
    * :meth:`AdbClient.pull`
    * :meth:`AdbClient.push`
    * :meth:`AdbClient.reboot`
    * :meth:`AdbClient.root`
    * :meth:`AdbClient.shell`
    * :meth:`AdbClient.stat`
    * :meth:`AdbClient.unroot`

"""


import logging
import os

from . import constants
from . import exceptions
from .adb_connection import AdbConnection
from .adb_request import read_version
from .adb_server import AdbServer
from .device_data import parse_device_list
from .device_monitor import DeviceMonitor
from .hidden_helpers import _open_bytesio, ensure_device, get_server_endpoint
from .receivers import CollectingOutputReceiver
from .sync_service import SyncService
from .transport.tcp_transport import TcpTransport


_LOGGER = logging.getLogger(__name__)


class AdbClient(object):
    """A client for the adb server.

    .. code-block:: python

       client = AdbClient()
       for device in client.get_devices():
           print(device.serial, client.shell('getprop ro.product.model', device))

    Parameters
    ----------
    host : str, None
        The address of the adb server; see :func:`adb_host.hidden_helpers.get_server_endpoint`
    port : int, None
        The port of the adb server; see :func:`adb_host.hidden_helpers.get_server_endpoint`
    encoding : str
        The text encoding used for requests and replies
    default_transport_timeout_s : float, None
        Default timeout in seconds for socket reads and writes, or ``None`` to block
    transport_factory : function, None
        A function that accepts ``host`` and ``port`` and returns a :class:`~adb_host.transport.base_transport.BaseTransport`;
        the default is :class:`~adb_host.transport.tcp_transport.TcpTransport`

    Attributes
    ----------
    _default_transport_timeout_s : float, None
        Default timeout in seconds for socket reads and writes, or ``None`` to block
    _transport_factory : function
        Creates the transport for each new connection
    encoding : str
        The text encoding used for requests and replies
    host : str
        The address of the adb server
    port : int
        The port of the adb server

    """
    def __init__(self, host=None, port=None, encoding=constants.DEFAULT_ENCODING, default_transport_timeout_s=None, transport_factory=None):
        self.host, self.port = get_server_endpoint(host, port)
        self.encoding = encoding
        self._default_transport_timeout_s = default_transport_timeout_s
        self._transport_factory = transport_factory or TcpTransport

    def __repr__(self):
        return 'AdbClient({}:{})'.format(self.host, self.port)

    # ======================================================================= #
    #                                                                         #
    #                                Connections                              #
    #                                                                         #
    # ======================================================================= #
    def create_connection(self):
        """Open a new connection to the adb server.

        Returns
        -------
        AdbConnection
            A connection in the open state; the caller is responsible for closing it

        """
        connection = self._new_connection()
        connection.connect()
        return connection

    def create_device_monitor(self, server=None):
        """Create a :class:`~adb_host.device_monitor.DeviceMonitor` with its own connection.

        Parameters
        ----------
        server : adb_host.adb_server.AdbServer, None
            Used by the monitor to restart the adb server when it resets the connection; the default is an
            :class:`~adb_host.adb_server.AdbServer` for this client's endpoint

        Returns
        -------
        DeviceMonitor
            A monitor that has not been started

        """
        if server is None:
            server = AdbServer(host=self.host, port=self.port, default_transport_timeout_s=self._default_transport_timeout_s)

        return DeviceMonitor(self._new_connection(), server)

    def create_sync_service(self, device):
        """Open a FileSync session with ``device``.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device

        Returns
        -------
        SyncService
            An open sync service; the caller is responsible for closing it

        """
        ensure_device(device)
        service = SyncService(self._new_connection(), device)

        try:
            service.open()
        except Exception:  # pylint: disable=broad-except
            service.close()
            raise

        return service

    # ======================================================================= #
    #                                                                         #
    #                              Host requests                              #
    #                                                                         #
    # ======================================================================= #
    def connect_device(self, host, port=constants.DEFAULT_DEVICE_PORT):
        """Ask the adb server to connect to a device over TCP/IP.

        Parameters
        ----------
        host : str
            The address of the device
        port : int
            The port on which adbd listens

        Returns
        -------
        str
            The adb server's message, e.g., ``'connected to 192.168.0.2:5555'``

        """
        with self.create_connection() as conn:
            conn.send_request('host:connect:{}:{}'.format(host, port))
            conn.read_response()
            return conn.read_string()

    def disconnect_device(self, host, port=constants.DEFAULT_DEVICE_PORT):
        """Ask the adb server to disconnect from a device that is connected over TCP/IP.

        Parameters
        ----------
        host : str
            The address of the device
        port : int
            The port on which adbd listens

        Returns
        -------
        str
            The adb server's message

        """
        with self.create_connection() as conn:
            conn.send_request('host:disconnect:{}:{}'.format(host, port))
            conn.read_response()
            return conn.read_string()

    def get_adb_version(self):
        """Get the version of the adb server.

        Returns
        -------
        int
            The version, e.g., ``41``

        """
        with self.create_connection() as conn:
            conn.send_request('host:version')
            conn.read_response()
            return read_version(conn)

    def get_devices(self):
        """Get the devices that are known to the adb server.

        Returns
        -------
        list[adb_host.device_data.DeviceData]
            The devices

        """
        with self.create_connection() as conn:
            conn.send_request('host:devices-l')
            conn.read_response()
            return parse_device_list(conn.read_string())

    def get_features(self, device):
        """Get the features that ``device`` supports.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device

        Returns
        -------
        list[str]
            The features, e.g., ``['shell_v2', 'cmd', 'stat_v2']``

        """
        ensure_device(device)

        with self.create_connection() as conn:
            conn.send_request('host-serial:{}:features'.format(device.serial))
            conn.read_response()
            features = conn.read_string()

        return [feature for feature in features.replace('\n', ',').split(',') if feature]

    def kill_adb(self):
        """Tell the adb server to exit.

        """
        with self.create_connection() as conn:
            conn.send_request('host:kill')

    # ======================================================================= #
    #                                                                         #
    #                             Device requests                             #
    #                                                                         #
    # ======================================================================= #
    def reboot(self, device, into=''):
        """Reboot ``device``.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device
        into : str
            ``''`` for a normal reboot, or the mode to reboot into, e.g., ``'bootloader'`` or ``'recovery'``

        """
        ensure_device(device)

        with self.create_connection() as conn:
            conn.set_device(device.serial)
            conn.send_request('reboot:{}'.format(into))
            conn.read_response()

    def root(self, device):
        """Restart adbd on ``device`` with root permissions.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device

        Raises
        ------
        adb_host.exceptions.AdbCommandFailureException
            The device did not reply that adbd is restarting

        """
        self._read_restart_reply(device, 'root:')

    def unroot(self, device):
        """Restart adbd on ``device`` without root permissions.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device

        Raises
        ------
        adb_host.exceptions.AdbCommandFailureException
            The device did not reply that adbd is restarting

        """
        self._read_restart_reply(device, 'unroot:')

    def _read_restart_reply(self, device, request):
        """Send ``root:`` or ``unroot:`` and check the device's reply.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device
        request : str
            ``'root:'`` or ``'unroot:'``

        """
        ensure_device(device)

        with self.create_connection() as conn:
            conn.set_device(device.serial)
            conn.send_request(request)
            conn.read_response()

            lines = []
            line = conn.read_line()
            while line is not None:
                lines.append(line.decode(self.encoding, constants.DECODE_ERRORS))
                line = conn.read_line()

        reply = '\n'.join(lines).strip()
        if not reply.lower().startswith('restarting'):
            raise exceptions.AdbCommandFailureException(reply)

        _LOGGER.info("%s: %s", device.serial, reply)

    # ======================================================================= #
    #                                                                         #
    #                                  Shell                                  #
    #                                                                         #
    # ======================================================================= #
    def execute_remote_command(self, command, device, receiver=None, cancellation_token=None, encoding=None):
        """Run ``command`` on ``device`` and pass each line of its output to ``receiver``.

        Cancelling ``cancellation_token`` closes the connection and makes this method return normally.
        ``receiver.flush()`` is called exactly once, however the command ends.

        Parameters
        ----------
        command : str
            The shell command
        device : adb_host.device_data.DeviceData
            The device
        receiver : adb_host.receivers.ShellOutputReceiver, None
            Receives the output; if it is ``None``, the output is discarded
        cancellation_token : adb_host.cancellation.CancellationToken, None
            Stops the command
        encoding : str, None
            The encoding of the output; undecodable bytes are escaped

        Raises
        ------
        adb_host.exceptions.AdbCommandFailureException
            The adb server refused the command
        adb_host.exceptions.ShellCommandUnresponsiveError
            Reading the output failed without the command having been cancelled

        """
        ensure_device(device)
        encoding = encoding or self.encoding
        receiver = receiver or CollectingOutputReceiver()

        connection = self._new_connection()
        unregister = cancellation_token.register(connection.close) if cancellation_token else None

        def cancelled():
            return cancellation_token is not None and cancellation_token.is_cancellation_requested

        try:
            try:
                connection.connect()
                connection.set_device(device.serial)
                connection.send_request('shell:{}'.format(command))
                connection.read_response()
            except (exceptions.AdbConnectionError, exceptions.AdbCommandFailureException, exceptions.InvalidResponseError) as exc:
                if cancelled():
                    _LOGGER.debug("Shell command %r on %s was cancelled: %r", command, device.serial, exc)
                    return
                raise

            try:
                line = connection.read_line()
                while line is not None and not cancelled():
                    receiver.add_output(line.decode(encoding, constants.DECODE_ERRORS))
                    line = connection.read_line()

            except exceptions.AdbConnectionError as exc:
                if cancelled():
                    _LOGGER.debug("Shell command %r on %s was cancelled: %r", command, device.serial, exc)
                    return
                raise exceptions.ShellCommandUnresponsiveError('The output of {!r} on {} could not be read: {}'.format(command, device.serial, exc)) from exc

        finally:
            if unregister:
                unregister()
            connection.close()
            receiver.flush()

    def shell(self, command, device, cancellation_token=None, encoding=None):
        """Run ``command`` on ``device`` and return its output.

        Parameters
        ----------
        command : str
            The shell command
        device : adb_host.device_data.DeviceData
            The device
        cancellation_token : adb_host.cancellation.CancellationToken, None
            Stops the command
        encoding : str, None
            The encoding of the output

        Returns
        -------
        str
            The output lines, joined by ``'\\n'``

        """
        receiver = CollectingOutputReceiver()
        self.execute_remote_command(command, device, receiver, cancellation_token, encoding)
        return receiver.output

    # ======================================================================= #
    #                                                                         #
    #                                 FileSync                                #
    #                                                                         #
    # ======================================================================= #
    def list_directory(self, device, remote_path):
        """List the contents of a directory on ``device``.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device
        remote_path : str
            The directory

        Returns
        -------
        list[adb_host.hidden_helpers.FileStat]
            The entries, including ``.`` and ``..``

        """
        with self.create_sync_service(device) as sync:
            return sync.list_directory(remote_path)

    def pull(self, device, remote_path, local_path, progress_callback=None, cancellation_token=None):
        """Pull a file from ``device``.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device
        remote_path : str
            The file on the device
        local_path : str, os.PathLike, io.BufferedIOBase
            The path or writable stream where the file will be saved
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been received
        cancellation_token : adb_host.cancellation.CancellationToken, None
            Stops the transfer

        """
        opener = open if isinstance(local_path, (str, os.PathLike)) else _open_bytesio

        with opener(local_path, 'wb') as stream, self.create_sync_service(device) as sync:
            sync.pull(remote_path, stream, progress_callback, cancellation_token)

    def push(self, device, local_path, remote_path, permissions=constants.DEFAULT_PUSH_MODE, timestamp=None, progress_callback=None, cancellation_token=None):
        """Push a file to ``device``.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device
        local_path : str, os.PathLike, io.BufferedIOBase
            The path or readable stream of the file to push
        remote_path : str
            The destination on the device
        permissions : int
            Stat mode for the file
        timestamp : int, datetime, None
            Modification time to set on the file; ``None`` means now
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been sent
        cancellation_token : adb_host.cancellation.CancellationToken, None
            Stops the transfer

        """
        opener = open if isinstance(local_path, (str, os.PathLike)) else _open_bytesio

        with opener(local_path, 'rb') as stream, self.create_sync_service(device) as sync:
            sync.push(stream, remote_path, permissions, timestamp, progress_callback, cancellation_token)

    def stat(self, device, remote_path):
        """Get a file's ``stat()`` information from ``device``.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device
        remote_path : str
            The file

        Returns
        -------
        adb_host.hidden_helpers.FileStat
            The path, mode, size, and mtime of the file

        """
        with self.create_sync_service(device) as sync:
            return sync.stat(remote_path)

    def _new_connection(self):
        """Create a connection that has not been opened yet.

        Returns
        -------
        AdbConnection
            An unopened connection to the adb server

        """
        return AdbConnection(self._transport_factory(self.host, self.port), self.encoding, self._default_transport_timeout_s)
