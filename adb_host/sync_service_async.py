# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement the :class:`SyncServiceAsync` class, the asyncio counterpart of :class:`adb_host.sync_service.SyncService`.

.. rubric:: Contents

* :class:`SyncServiceAsync`

    * :meth:`SyncServiceAsync._cancellation_scope`
    * :meth:`SyncServiceAsync._pull`
    * :meth:`SyncServiceAsync._push`
    * :meth:`SyncServiceAsync._read_statistics`
    * :meth:`SyncServiceAsync._read_sync_id`
    * :meth:`SyncServiceAsync._send_sync_request`
    * :meth:`SyncServiceAsync.close`
    * :meth:`SyncServiceAsync.list_directory`
    * :meth:`SyncServiceAsync.open`
    * :meth:`SyncServiceAsync.pull`
    * :meth:`SyncServiceAsync.push`
    * :meth:`SyncServiceAsync.stat`

"""


from contextlib import asynccontextmanager
import logging
import struct

from . import constants
from . import exceptions
from .adb_request import pack_sync_request, unpack_sync_id, unpack_sync_length
from .hidden_helpers import FileStat, _maybe_await, _SyncTransferInfo, close_on_event, ensure_device, get_stream_length, to_unix_seconds


_LOGGER = logging.getLogger(__name__)


class SyncServiceAsync(object):
    """Access the FileSync service of a device over one ``sync:`` session, using asyncio.

    Streams may be regular file-like objects or ``aiofiles`` file objects.

    Parameters
    ----------
    connection : adb_host.adb_connection_async.AdbConnectionAsync
        A connection to the adb server that is not used for anything else; it is connected if necessary
    device : adb_host.device_data.DeviceData
        The device whose files will be accessed

    Attributes
    ----------
    _connection : adb_host.adb_connection_async.AdbConnectionAsync
        The connection that carries the ``sync:`` session
    _is_open : bool
        Whether the ``sync:`` session has been started
    device : adb_host.device_data.DeviceData
        The device whose files will be accessed
    max_buffer_size : int
        The maximum size of a ``DATA`` frame, header included

    """
    def __init__(self, connection, device):
        self._connection = connection
        self._is_open = False
        self.device = device
        self.max_buffer_size = constants.MAX_BUFFER_SIZE

    async def __aenter__(self):
        if not self._is_open:
            await self.open()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.close()

    @property
    def is_open(self):
        """Whether the ``sync:`` session is open.

        Returns
        -------
        bool
            Whether FileSync requests can be sent

        """
        return self._is_open and self._connection.state == constants.CONNECTION_OPEN

    async def open(self):
        """Scope the connection to the device and start the ``sync:`` session.

        """
        ensure_device(self.device)

        if self._connection.state == constants.CONNECTION_UNOPENED:
            await self._connection.connect()

        await self._connection.set_device(self.device.serial)
        await self._connection.send_request('sync:')
        await self._connection.read_response()
        self._is_open = True

    async def close(self):
        """End the ``sync:`` session and close the connection.

        """
        if self.is_open:
            try:
                await self._connection.send(pack_sync_request(constants.QUIT))
            except exceptions.AdbConnectionError as exc:
                _LOGGER.debug("Unable to send %r: %s", constants.QUIT, exc)

        self._is_open = False
        await self._connection.close()

    async def list_directory(self, remote_path):
        """Return a directory listing of the given path.

        Parameters
        ----------
        remote_path : str
            Directory to list

        Returns
        -------
        files : list[FileStat]
            Name, mode, size, and mtime info for the entries in the directory

        """
        path = self._check_path(remote_path)

        await self._send_sync_request(constants.LIST, path)
        files = []

        while True:
            cmd_id = await self._read_sync_id()
            if cmd_id == constants.DONE:
                await self._connection.read(constants.FILESYNC_STAT_SIZE + 4)
                break

            if cmd_id != constants.DENT:
                raise exceptions.InvalidResponseError('Expected one of {}, got {}'.format([constants.DENT, constants.DONE], cmd_id))

            mode, size, mtime = await self._read_statistics()
            files.append(FileStat(await self._connection.read_sync_string(), mode, size, mtime))

        return files

    async def pull(self, remote_path, stream, progress_callback=None, cancel_event=None):
        """Pull a file from the device into ``stream``.

        Parameters
        ----------
        remote_path : str
            The file on the device that will be pulled
        stream : io.BufferedIOBase, aiofiles.threadpool.binary.AsyncBufferedIOBase
            File-like object for writing to
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been received
        cancel_event : asyncio.Event, None
            Setting it closes the connection and aborts the pull

        """
        path = self._check_path(remote_path)

        async with self._cancellation_scope(cancel_event):
            await self._pull(remote_path, path, stream, progress_callback, cancel_event)

    async def push(self, stream, remote_path, permissions=constants.DEFAULT_PUSH_MODE, timestamp=None, progress_callback=None, cancel_event=None):
        """Push a file-like object to the device.

        Parameters
        ----------
        stream : io.BufferedIOBase, aiofiles.threadpool.binary.AsyncBufferedIOBase
            File-like object for reading from
        remote_path : str
            Destination on the device to write to
        permissions : int
            Stat mode for the file
        timestamp : int, datetime, None
            Modification time to set on the file; ``None`` means now
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been sent
        cancel_event : asyncio.Event, None
            Setting it closes the connection and aborts the push

        """
        self._check_path(remote_path, max_length=constants.MAX_PATH_LENGTH)

        async with self._cancellation_scope(cancel_event):
            await self._push(stream, remote_path, permissions, timestamp, progress_callback, cancel_event)

    async def stat(self, remote_path):
        """Get a file's ``stat()`` information.

        Parameters
        ----------
        remote_path : str
            The file on the device for which we will get information

        Returns
        -------
        FileStat
            The path, mode, size, and mtime of the file

        """
        path = self._check_path(remote_path)

        await self._send_sync_request(constants.STAT, path)
        cmd_id = await self._read_sync_id()

        if cmd_id == constants.FAIL:
            raise exceptions.AdbCommandFailureException(await self._connection.read_sync_string())

        if cmd_id != constants.STAT:
            raise exceptions.InvalidResponseError('Expected {}, got {}'.format(constants.STAT, cmd_id))

        mode, size, mtime = await self._read_statistics()
        return FileStat(remote_path, mode, size, mtime)

    # ======================================================================= #
    #                                                                         #
    #                              Hidden Methods                             #
    #                                                                         #
    # ======================================================================= #
    @asynccontextmanager
    async def _cancellation_scope(self, cancel_event):
        """Close the connection if ``cancel_event`` is set and report failures after that as a cancellation.

        Parameters
        ----------
        cancel_event : asyncio.Event, None
            The cancellation signal, if any

        """
        try:
            async with close_on_event(self._connection, cancel_event):
                yield
        except (exceptions.AdbConnectionError, exceptions.InvalidResponseError):
            if cancel_event is not None and cancel_event.is_set():
                raise exceptions.AdbCancelledError('The transfer was cancelled')
            raise

    def _check_path(self, remote_path, max_length=None):
        """Make sure that ``remote_path`` can be sent and that the session is open.

        Parameters
        ----------
        remote_path : str
            The path on the device
        max_length : int, None
            The maximum encoded length of the path

        Returns
        -------
        bytes
            The encoded path

        """
        if not remote_path:
            raise exceptions.DevicePathInvalidError("Cannot use an empty device path")

        path = remote_path.encode(self._connection.encoding)
        if max_length is not None and len(path) > max_length:
            raise exceptions.DevicePathTooLongError('The remote path {} exceeds the maximum path size {}'.format(remote_path, max_length))

        if not self.is_open:
            raise exceptions.AdbConnectionError("FileSync request not sent because the sync session is not open.  (Did you call `SyncServiceAsync.open()`?)")

        return path

    async def _pull(self, remote_path, path, stream, progress_callback, cancel_event):
        """Pull a file from the device into ``stream``.

        """
        try:
            total_bytes = max((await self.stat(remote_path)).size, 0)
        except (exceptions.AdbCommandFailureException, exceptions.InvalidResponseError) as exc:
            _LOGGER.debug("Unable to stat %s; progress will not be reported: %s", remote_path, exc)
            total_bytes = 0

        transfer = _SyncTransferInfo(total_bytes, progress_callback)

        await self._send_sync_request(constants.RECV, path)
        while True:
            cmd_id = await self._read_sync_id()
            if cancel_event is not None and cancel_event.is_set():
                raise exceptions.AdbCancelledError('The transfer was cancelled')

            if cmd_id == constants.DONE:
                await self._connection.read(4)
                break

            if cmd_id == constants.FAIL:
                raise exceptions.AdbCommandFailureException("Failed to pull '{}'. {}".format(remote_path, await self._connection.read_sync_string()))

            if cmd_id != constants.DATA:
                raise exceptions.InvalidResponseError('Expected one of {}, got {}'.format([constants.DATA, constants.DONE], cmd_id))

            size = unpack_sync_length(await self._connection.read(4))
            if size > self.max_buffer_size:
                raise exceptions.InvalidResponseError('The adb server is sending {} bytes of data, which exceeds the maximum chunk size {}'.format(size, self.max_buffer_size))

            await _maybe_await(stream.write(await self._connection.read(size)))
            transfer.add(size)

    async def _push(self, stream, remote_path, permissions, timestamp, progress_callback, cancel_event):
        """Push a file-like object to the device.

        """
        fileinfo = '{},{}'.format(remote_path, int(permissions)).encode(self._connection.encoding)
        await self._send_sync_request(constants.SEND, fileinfo)

        max_data_size = self.max_buffer_size - constants.FILESYNC_DATA_HEADER_SIZE
        transfer = _SyncTransferInfo(get_stream_length(stream), progress_callback)

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise exceptions.AdbCancelledError('The transfer was cancelled')

            data = await _maybe_await(stream.read(max_data_size))
            if not data:
                break

            await self._send_sync_request(constants.DATA, data)
            transfer.add(len(data))

        await self._send_sync_request(constants.DONE, size=to_unix_seconds(timestamp))

        cmd_id = await self._read_sync_id()
        if cmd_id == constants.OKAY:
            await self._connection.read(4)
            return

        if cmd_id == constants.FAIL:
            raise exceptions.PushFailedError(await self._connection.read_sync_string())

        raise exceptions.InvalidResponseError('Expected one of {}, got {}'.format([constants.OKAY, constants.FAIL], cmd_id))

    async def _read_statistics(self):
        return struct.unpack(constants.FILESYNC_STAT_FORMAT, await self._connection.read(constants.FILESYNC_STAT_SIZE))

    async def _read_sync_id(self):
        return unpack_sync_id(await self._connection.read(4))

    async def _send_sync_request(self, command_id, data=b'', size=None):
        await self._connection.send(pack_sync_request(command_id, data, size))
