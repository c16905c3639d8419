# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement helpers for the client, connection, and sync classes.

.. rubric:: Contents

* :class:`_SyncTransferInfo`

    * :meth:`_SyncTransferInfo.add`
    * :attr:`_SyncTransferInfo.percentage`

* :class:`FileStat`
* :func:`_maybe_await`
* :func:`_open_bytesio`
* :func:`_open_bytesio_async`
* :func:`close_on_event`
* :func:`ensure_device`
* :func:`get_server_endpoint`
* :func:`get_stream_length`
* :func:`to_unix_seconds`

"""


import asyncio
from collections import namedtuple
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
import inspect
import io
import os
import time

from . import constants


FileStat = namedtuple('FileStat', ['path', 'mode', 'size', 'mtime'])


@contextmanager
def _open_bytesio(stream, *args, **kwargs):  # pylint: disable=unused-argument
    """A context manager for a file-like object that does nothing.

    Parameters
    ----------
    stream : BytesIO
        The BytesIO stream
    args : list
        Unused positional arguments
    kwargs : dict
        Unused keyword arguments

    Yields
    ------
    stream : BytesIO
        The `stream` input parameter

    """
    yield stream


@asynccontextmanager
async def _open_bytesio_async(stream, *args, **kwargs):  # pylint: disable=unused-argument
    """An async context manager for a file-like object that does nothing.

    Yields
    ------
    stream : BytesIO
        The `stream` input parameter

    """
    yield stream


async def _maybe_await(result):
    """Await ``result`` if it is awaitable, so that regular and ``aiofiles`` file objects can be used alike.

    Parameters
    ----------
    result : object
        The return value of a file method

    Returns
    -------
    object
        ``result``, or what it resolved to

    """
    if inspect.isawaitable(result):
        return await result

    return result


@asynccontextmanager
async def close_on_event(connection, cancel_event):
    """Close ``connection`` as soon as ``cancel_event`` is set, for as long as the context is active.

    Parameters
    ----------
    connection : adb_host.adb_connection_async.AdbConnectionAsync
        The connection to close
    cancel_event : asyncio.Event, None
        The cancellation signal; if it is ``None``, nothing is watched

    """
    if cancel_event is None:
        yield
        return

    async def _watch():
        await cancel_event.wait()
        await connection.close()

    watcher = asyncio.ensure_future(_watch())
    try:
        yield
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)


def get_server_endpoint(host=None, port=None):
    """Get the address of the adb server.

    Explicit arguments win; otherwise the ``ANDROID_ADB_SERVER_ADDRESS`` and ``ANDROID_ADB_SERVER_PORT`` environment
    variables are used, and then :const:`adb_host.constants.DEFAULT_HOST` and :const:`adb_host.constants.DEFAULT_PORT`.

    Parameters
    ----------
    host : str, None
        The address of the adb server
    port : int, None
        The port of the adb server

    Returns
    -------
    host : str
        The address of the adb server
    port : int
        The port of the adb server

    """
    if host is None:
        host = os.environ.get(constants.SERVER_ADDRESS_ENV) or constants.DEFAULT_HOST

    if port is None:
        env_port = os.environ.get(constants.SERVER_PORT_ENV)
        port = int(env_port) if env_port else constants.DEFAULT_PORT

    return host, port


def ensure_device(device):
    """Raise a ``ValueError`` if ``device`` is ``None`` or has no serial.

    Parameters
    ----------
    device : adb_host.device_data.DeviceData
        The device to validate

    """
    if device is None:
        raise ValueError('A device is required')

    if not device.serial:
        raise ValueError('You must specify a serial number for the device')


def get_stream_length(stream):
    """Get the number of bytes remaining in ``stream``, if that can be determined.

    Parameters
    ----------
    stream : io.IOBase
        A readable file-like object

    Returns
    -------
    int
        The number of bytes between the current position and the end of the stream, or 0 if the stream is not seekable
        (``aiofiles`` file objects count as not seekable)

    """
    seekable = getattr(stream, 'seekable', None)
    if seekable is None or inspect.iscoroutinefunction(seekable):
        return 0

    try:
        if not stream.seekable():
            return 0

        position = stream.tell()
        end = stream.seek(0, io.SEEK_END)
        stream.seek(position)
    except (AttributeError, OSError, ValueError):
        return 0

    return end - position


def to_unix_seconds(timestamp):
    """Convert ``timestamp`` into the integer number of seconds that ``DONE`` carries.

    Parameters
    ----------
    timestamp : int, float, datetime, None
        Seconds since the epoch, a ``datetime``, or ``None`` for the current time

    Returns
    -------
    int
        Seconds since the epoch

    """
    if timestamp is None:
        return int(time.time())

    if isinstance(timestamp, datetime):
        return int(timestamp.timestamp())

    return int(timestamp)


class _SyncTransferInfo(object):  # pylint: disable=too-few-public-methods
    """A class for tracking the progress of a single FileSync transfer.

    Parameters
    ----------
    total_bytes : int
        The size of the transfer, or 0 if it is not known
    progress_callback : function, None
        A function that accepts the percentage of the transfer that is complete

    Attributes
    ----------
    progress_callback : function, None
        A function that accepts the percentage of the transfer that is complete
    total_bytes : int
        The size of the transfer, or 0 if it is not known
    transferred_bytes : int
        The number of bytes transferred so far

    """
    def __init__(self, total_bytes, progress_callback=None):
        self.total_bytes = total_bytes
        self.transferred_bytes = 0
        self.progress_callback = progress_callback

    @property
    def percentage(self):
        """The percentage of the transfer that is complete, or ``None`` if the size is not known.

        Returns
        -------
        int, None
            The completed percentage

        """
        if not self.total_bytes:
            return None

        return int(100.0 * self.transferred_bytes / self.total_bytes)

    def add(self, num_bytes):
        """Record ``num_bytes`` more transferred bytes and report the progress, if possible.

        Parameters
        ----------
        num_bytes : int
            The number of bytes just transferred

        """
        self.transferred_bytes += num_bytes
        if self.progress_callback and self.total_bytes:
            self.progress_callback(self.percentage)
