# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement the :class:`SyncService` class, which speaks the FileSync protocol to push, pull, stat, and list files.

.. rubric:: Contents

* :class:`SyncService`

    * :meth:`SyncService._cancellation_scope`
    * :meth:`SyncService._check_path`
    * :meth:`SyncService._pull`
    * :meth:`SyncService._push`
    * :meth:`SyncService._read_statistics`
    * :meth:`SyncService._read_sync_id`
    * :meth:`SyncService._send_sync_request`
    * :meth:`SyncService.close`
    * :attr:`SyncService.is_open`
    * :meth:`SyncService.list_directory`
    * :meth:`SyncService.open`
    * :meth:`SyncService.pull`
    * :meth:`SyncService.push`
    * :meth:`SyncService.stat`

"""


from contextlib import contextmanager
import logging
import struct

from . import constants
from . import exceptions
from .adb_request import pack_sync_request, unpack_sync_id, unpack_sync_length
from .hidden_helpers import FileStat, _SyncTransferInfo, ensure_device, get_stream_length, to_unix_seconds


_LOGGER = logging.getLogger(__name__)


class SyncService(object):
    """Access the FileSync service of a device over one ``sync:`` session.

    .. code-block:: python

       with SyncService(connection, device) as sync, open('local.txt', 'rb') as stream:
           sync.push(stream, '/sdcard/remote.txt')

    Parameters
    ----------
    connection : adb_host.adb_connection.AdbConnection
        A connection to the adb server that is not used for anything else; it is connected if necessary
    device : adb_host.device_data.DeviceData
        The device whose files will be accessed

    Attributes
    ----------
    _connection : adb_host.adb_connection.AdbConnection
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

    def __enter__(self):
        if not self._is_open:
            self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    @property
    def is_open(self):
        """Whether the ``sync:`` session is open.

        Returns
        -------
        bool
            Whether FileSync requests can be sent

        """
        return self._is_open and self._connection.state == constants.CONNECTION_OPEN

    # ======================================================================= #
    #                                                                         #
    #                               Open & Close                              #
    #                                                                         #
    # ======================================================================= #
    def open(self):
        """Scope the connection to the device and start the ``sync:`` session.

        """
        ensure_device(self.device)

        if self._connection.state == constants.CONNECTION_UNOPENED:
            self._connection.connect()

        self._connection.set_device(self.device.serial)
        self._connection.send_request('sync:')
        self._connection.read_response()
        self._is_open = True

    def close(self):
        """End the ``sync:`` session and close the connection.

        """
        if self.is_open:
            try:
                self._connection.send(pack_sync_request(constants.QUIT))
            except exceptions.AdbConnectionError as exc:
                _LOGGER.debug("Unable to send %r: %s", constants.QUIT, exc)

        self._is_open = False
        self._connection.close()

    # ======================================================================= #
    #                                                                         #
    #                                 FileSync                                #
    #                                                                         #
    # ======================================================================= #
    def list_directory(self, remote_path):
        """Return a directory listing of the given path.

        Parameters
        ----------
        remote_path : str
            Directory to list

        Returns
        -------
        files : list[FileStat]
            Name, mode, size, and mtime info for the entries in the directory

        Raises
        ------
        adb_host.exceptions.InvalidResponseError
            A reply was neither ``b'DENT'`` nor ``b'DONE'``

        """
        path = self._check_path(remote_path)

        self._send_sync_request(constants.LIST, path)
        files = []

        while True:
            cmd_id = self._read_sync_id()
            if cmd_id == constants.DONE:
                # `DONE` comes with an all-zero record and name length
                self._connection.read(constants.FILESYNC_STAT_SIZE + 4)
                break

            if cmd_id != constants.DENT:
                raise exceptions.InvalidResponseError('Expected one of {}, got {}'.format([constants.DENT, constants.DONE], cmd_id))

            mode, size, mtime = self._read_statistics()
            files.append(FileStat(self._connection.read_sync_string(), mode, size, mtime))

        return files

    def pull(self, remote_path, stream, progress_callback=None, cancellation_token=None):
        """Pull a file from the device into the file-like ``stream``.

        Parameters
        ----------
        remote_path : str
            The file on the device that will be pulled
        stream : io.BufferedIOBase
            File-like object for writing to
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been received
        cancellation_token : adb_host.cancellation.CancellationToken, None
            Cancelling it closes the connection and aborts the pull

        Raises
        ------
        adb_host.exceptions.AdbCancelledError
            The pull was cancelled
        adb_host.exceptions.AdbCommandFailureException
            The device could not send the file
        adb_host.exceptions.InvalidResponseError
            The adb server sent an unexpected reply or an oversized ``DATA`` frame

        """
        path = self._check_path(remote_path)

        with self._cancellation_scope(cancellation_token):
            self._pull(remote_path, path, stream, progress_callback, cancellation_token)

    def push(self, stream, remote_path, permissions=constants.DEFAULT_PUSH_MODE, timestamp=None, progress_callback=None, cancellation_token=None):
        """Push a file-like object to the device.

        Parameters
        ----------
        stream : io.BufferedIOBase
            File-like object for reading from
        remote_path : str
            Destination on the device to write to
        permissions : int
            Stat mode for the file
        timestamp : int, datetime, None
            Modification time to set on the file; ``None`` means now
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been sent; only called when the size of
            ``stream`` can be determined
        cancellation_token : adb_host.cancellation.CancellationToken, None
            Cancelling it closes the connection and aborts the push

        Raises
        ------
        adb_host.exceptions.DevicePathTooLongError
            ``remote_path`` is longer than :const:`adb_host.constants.MAX_PATH_LENGTH` bytes
        adb_host.exceptions.AdbCancelledError
            The push was cancelled
        adb_host.exceptions.PushFailedError
            The device rejected the file

        """
        self._check_path(remote_path, max_length=constants.MAX_PATH_LENGTH)

        with self._cancellation_scope(cancellation_token):
            self._push(stream, remote_path, permissions, timestamp, progress_callback, cancellation_token)

    def stat(self, remote_path):
        """Get a file's ``stat()`` information.

        Parameters
        ----------
        remote_path : str
            The file on the device for which we will get information

        Returns
        -------
        FileStat
            The path, mode, size, and mtime of the file; they are all 0 if the file does not exist

        """
        path = self._check_path(remote_path)

        self._send_sync_request(constants.STAT, path)
        cmd_id = self._read_sync_id()

        if cmd_id == constants.FAIL:
            raise exceptions.AdbCommandFailureException(self._connection.read_sync_string())

        if cmd_id != constants.STAT:
            raise exceptions.InvalidResponseError('Expected {}, got {}'.format(constants.STAT, cmd_id))

        mode, size, mtime = self._read_statistics()
        return FileStat(remote_path, mode, size, mtime)

    # ======================================================================= #
    #                                                                         #
    #                              Hidden Methods                             #
    #                                                                         #
    # ======================================================================= #
    @contextmanager
    def _cancellation_scope(self, cancellation_token):
        """Close the connection if ``cancellation_token`` fires and report failures after that as a cancellation.

        Parameters
        ----------
        cancellation_token : adb_host.cancellation.CancellationToken, None
            The cancellation signal, if any

        """
        if cancellation_token is None:
            yield
            return

        unregister = cancellation_token.register(self._connection.close)
        try:
            yield
        except (exceptions.AdbConnectionError, exceptions.InvalidResponseError):
            if cancellation_token.is_cancellation_requested:
                raise exceptions.AdbCancelledError('The transfer was cancelled')
            raise
        finally:
            unregister()

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
            raise exceptions.AdbConnectionError("FileSync request not sent because the sync session is not open.  (Did you call `SyncService.open()`?)")

        return path

    def _pull(self, remote_path, path, stream, progress_callback, cancellation_token):
        """Pull a file from the device into the file-like ``stream``.

        Parameters
        ----------
        remote_path : str
            The file on the device that will be pulled
        path : bytes
            The encoded ``remote_path``
        stream : io.BufferedIOBase
            File-like object for writing to
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been received
        cancellation_token : adb_host.cancellation.CancellationToken, None
            The cancellation signal, if any

        """
        # The size is only needed for progress reporting, so a failure here does not end the pull
        try:
            total_bytes = max(self.stat(remote_path).size, 0)
        except (exceptions.AdbCommandFailureException, exceptions.InvalidResponseError) as exc:
            _LOGGER.debug("Unable to stat %s; progress will not be reported: %s", remote_path, exc)
            total_bytes = 0

        transfer = _SyncTransferInfo(total_bytes, progress_callback)

        self._send_sync_request(constants.RECV, path)
        while True:
            cmd_id = self._read_sync_id()
            if cancellation_token:
                cancellation_token.raise_if_cancellation_requested()

            if cmd_id == constants.DONE:
                self._connection.read(4)
                break

            if cmd_id == constants.FAIL:
                raise exceptions.AdbCommandFailureException("Failed to pull '{}'. {}".format(remote_path, self._connection.read_sync_string()))

            if cmd_id != constants.DATA:
                raise exceptions.InvalidResponseError('Expected one of {}, got {}'.format([constants.DATA, constants.DONE], cmd_id))

            size = unpack_sync_length(self._connection.read(4))
            if size > self.max_buffer_size:
                raise exceptions.InvalidResponseError('The adb server is sending {} bytes of data, which exceeds the maximum chunk size {}'.format(size, self.max_buffer_size))

            stream.write(self._connection.read(size))
            transfer.add(size)

    def _push(self, stream, remote_path, permissions, timestamp, progress_callback, cancellation_token):
        """Push a file-like object to the device.

        Parameters
        ----------
        stream : io.BufferedIOBase
            File-like object for reading from
        remote_path : str
            Destination on the device to write to
        permissions : int
            Stat mode for the file
        timestamp : int, datetime, None
            Modification time
        progress_callback : function, None
            Callback method that accepts the percentage of the file that has been sent
        cancellation_token : adb_host.cancellation.CancellationToken, None
            The cancellation signal, if any

        Raises
        ------
        PushFailedError
            Raised on push failure.

        """
        fileinfo = '{},{}'.format(remote_path, int(permissions)).encode(self._connection.encoding)
        self._send_sync_request(constants.SEND, fileinfo)

        max_data_size = self.max_buffer_size - constants.FILESYNC_DATA_HEADER_SIZE
        transfer = _SyncTransferInfo(get_stream_length(stream), progress_callback)

        while True:
            if cancellation_token:
                cancellation_token.raise_if_cancellation_requested()

            data = stream.read(max_data_size)
            if not data:
                break

            self._send_sync_request(constants.DATA, data)
            transfer.add(len(data))

        # DONE doesn't send data, but it hides the timestamp in the size field.
        self._send_sync_request(constants.DONE, size=to_unix_seconds(timestamp))

        cmd_id = self._read_sync_id()
        if cmd_id == constants.OKAY:
            self._connection.read(4)
            return

        if cmd_id == constants.FAIL:
            raise exceptions.PushFailedError(self._connection.read_sync_string())

        raise exceptions.InvalidResponseError('Expected one of {}, got {}'.format([constants.OKAY, constants.FAIL], cmd_id))

    def _read_statistics(self):
        """Read the mode, size, and mtime record that follows ``b'STAT'`` and ``b'DENT'``.

        Returns
        -------
        tuple[int, int, int]
            The mode, size, and mtime

        """
        return struct.unpack(constants.FILESYNC_STAT_FORMAT, self._connection.read(constants.FILESYNC_STAT_SIZE))

    def _read_sync_id(self):
        """Read the id of the next FileSync reply.

        Returns
        -------
        bytes
            One of :const:`adb_host.constants.FILESYNC_IDS`

        """
        return unpack_sync_id(self._connection.read(4))

    def _send_sync_request(self, command_id, data=b'', size=None):
        """Send a FileSync request.

        Parameters
        ----------
        command_id : bytes
            Command to send.
        data : bytes
            Optional data to send
        size : int, None
            Optionally override size from len(data).

        """
        self._connection.send(pack_sync_request(command_id, data, size))
