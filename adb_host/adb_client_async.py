# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement the :class:`AdbClientAsync` class, the asyncio counterpart of :class:`adb_host.adb_client.AdbClient`.

.. rubric:: Contents

* :class:`AdbClientAsync`

    * :meth:`AdbClientAsync._new_connection`
    * :meth:`AdbClientAsync.create_connection`
    * :meth:`AdbClientAsync.create_sync_service`
    * :meth:`AdbClientAsync.execute_remote_command`
    * :meth:`AdbClientAsync.get_adb_version`
    * :meth:`AdbClientAsync.get_devices`
    * :meth:`AdbClientAsync.list_directory`
    * :meth:`AdbClientAsync.pull`
    * :meth:`AdbClientAsync.push`
    * :meth:`AdbClientAsync.shell`
    * :meth:`AdbClientAsync.stat`

"""


import logging
import os

import aiofiles

from . import constants
from . import exceptions
from .adb_connection_async import AdbConnectionAsync
from .adb_request import parse_length
from .device_data import parse_device_list
from .hidden_helpers import _maybe_await, _open_bytesio_async, close_on_event, ensure_device, get_server_endpoint
from .receivers import CollectingOutputReceiver
from .sync_service_async import SyncServiceAsync
from .transport.tcp_transport_async import TcpTransportAsync


_LOGGER = logging.getLogger(__name__)


class AdbClientAsync(object):
    """An asyncio client for the adb server.

    Parameters
    ----------
    host : str, None
        The address of the adb server; see :func:`adb_host.hidden_helpers.get_server_endpoint`
    port : int, None
        The port of the adb server; see :func:`adb_host.hidden_helpers.get_server_endpoint`
    encoding : str
        The text encoding used for requests and replies
    default_transport_timeout_s : float, None
        Default timeout in seconds for socket reads and writes, or ``None`` to wait indefinitely
    transport_factory : function, None
        A function that accepts ``host``, ``port``, and ``default_transport_timeout_s`` and returns a
        :class:`~adb_host.transport.base_transport_async.BaseTransportAsync`; the default is
        :class:`~adb_host.transport.tcp_transport_async.TcpTransportAsync`

    Attributes
    ----------
    _default_transport_timeout_s : float, None
        Default timeout in seconds for socket reads and writes, or ``None`` to wait indefinitely
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
        self._transport_factory = transport_factory or TcpTransportAsync

    async def create_connection(self):
        """Open a new connection to the adb server.

        Returns
        -------
        AdbConnectionAsync
            A connection in the open state; the caller is responsible for closing it

        """
        connection = self._new_connection()
        await connection.connect()
        return connection

    async def create_sync_service(self, device):
        """Open a FileSync session with ``device``.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device

        Returns
        -------
        SyncServiceAsync
            An open sync service; the caller is responsible for closing it

        """
        ensure_device(device)
        service = SyncServiceAsync(self._new_connection(), device)

        try:
            await service.open()
        except Exception:  # pylint: disable=broad-except
            await service.close()
            raise

        return service

    async def get_adb_version(self):
        """Get the version of the adb server.

        Returns
        -------
        int
            The version

        """
        async with await self.create_connection() as conn:
            await conn.send_request('host:version')
            await conn.read_response()
            length = parse_length(await conn.read(constants.LENGTH_PREFIX_SIZE))
            return parse_length(await conn.read(length))

    async def get_devices(self):
        """Get the devices that are known to the adb server.

        Returns
        -------
        list[adb_host.device_data.DeviceData]
            The devices

        """
        async with await self.create_connection() as conn:
            await conn.send_request('host:devices-l')
            await conn.read_response()
            return parse_device_list(await conn.read_string())

    async def execute_remote_command(self, command, device, receiver=None, cancel_event=None, encoding=None):
        """Run ``command`` on ``device`` and pass each line of its output to ``receiver``.

        Setting ``cancel_event`` closes the connection and makes this coroutine return normally.
        ``receiver.flush()`` is called exactly once, however the command ends.

        Parameters
        ----------
        command : str
            The shell command
        device : adb_host.device_data.DeviceData
            The device
        receiver : adb_host.receivers.ShellOutputReceiver, None
            Receives the output; its methods may be regular functions or coroutines
        cancel_event : asyncio.Event, None
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

        def cancelled():
            return cancel_event is not None and cancel_event.is_set()

        try:
            async with close_on_event(connection, cancel_event):
                try:
                    await connection.connect()
                    await connection.set_device(device.serial)
                    await connection.send_request('shell:{}'.format(command))
                    await connection.read_response()
                except (exceptions.AdbConnectionError, exceptions.AdbCommandFailureException, exceptions.InvalidResponseError) as exc:
                    if cancelled():
                        _LOGGER.debug("Shell command %r on %s was cancelled: %r", command, device.serial, exc)
                        return
                    raise

                try:
                    line = await connection.read_line()
                    while line is not None and not cancelled():
                        await _maybe_await(receiver.add_output(line.decode(encoding, constants.DECODE_ERRORS)))
                        line = await connection.read_line()

                except exceptions.AdbConnectionError as exc:
                    if cancelled():
                        _LOGGER.debug("Shell command %r on %s was cancelled: %r", command, device.serial, exc)
                        return
                    raise exceptions.ShellCommandUnresponsiveError('The output of {!r} on {} could not be read: {}'.format(command, device.serial, exc)) from exc

        finally:
            await connection.close()
            await _maybe_await(receiver.flush())

    async def shell(self, command, device, cancel_event=None, encoding=None):
        """Run ``command`` on ``device`` and return its output.

        Parameters
        ----------
        command : str
            The shell command
        device : adb_host.device_data.DeviceData
            The device
        cancel_event : asyncio.Event, None
            Stops the command
        encoding : str, None
            The encoding of the output

        Returns
        -------
        str
            The output lines, joined by ``'\\n'``

        """
        receiver = CollectingOutputReceiver()
        await self.execute_remote_command(command, device, receiver, cancel_event, encoding)
        return receiver.output

    async def list_directory(self, device, remote_path):
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
            The entries

        """
        async with await self.create_sync_service(device) as sync:
            return await sync.list_directory(remote_path)

    async def pull(self, device, remote_path, local_path, progress_callback=None, cancel_event=None):
        """Pull a file from ``device``.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device
        remote_path : str
            The file on the device
        local_path : str, os.PathLike, io.BufferedIOBase
            The path where the file will be saved (written via ``aiofiles``), or a writable stream
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been received
        cancel_event : asyncio.Event, None
            Stops the transfer

        """
        opener = aiofiles.open if isinstance(local_path, (str, os.PathLike)) else _open_bytesio_async

        async with opener(local_path, 'wb') as stream, await self.create_sync_service(device) as sync:
            await sync.pull(remote_path, stream, progress_callback, cancel_event)

    async def push(self, device, local_path, remote_path, permissions=constants.DEFAULT_PUSH_MODE, timestamp=None, progress_callback=None, cancel_event=None):
        """Push a file to ``device``.

        Parameters
        ----------
        device : adb_host.device_data.DeviceData
            The device
        local_path : str, os.PathLike, io.BufferedIOBase
            The path of the file to push (read via ``aiofiles``), or a readable stream
        remote_path : str
            The destination on the device
        permissions : int
            Stat mode for the file
        timestamp : int, datetime, None
            Modification time to set on the file; ``None`` means now
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been sent
        cancel_event : asyncio.Event, None
            Stops the transfer

        """
        opener = aiofiles.open if isinstance(local_path, (str, os.PathLike)) else _open_bytesio_async

        async with opener(local_path, 'rb') as stream, await self.create_sync_service(device) as sync:
            await sync.push(stream, remote_path, permissions, timestamp, progress_callback, cancel_event)

    async def stat(self, device, remote_path):
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
        async with await self.create_sync_service(device) as sync:
            return await sync.stat(remote_path)

    def _new_connection(self):
        return AdbConnectionAsync(self._transport_factory(self.host, self.port, self._default_transport_timeout_s), self.encoding, self._default_transport_timeout_s)
