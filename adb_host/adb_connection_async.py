# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement the :class:`AdbConnectionAsync` class, which owns one asyncio connection to the adb server.

.. rubric:: Contents

* :class:`AdbConnectionAsync`

    * :meth:`AdbConnectionAsync.close`
    * :meth:`AdbConnectionAsync.connect`
    * :meth:`AdbConnectionAsync.read`
    * :meth:`AdbConnectionAsync.read_line`
    * :meth:`AdbConnectionAsync.read_response`
    * :meth:`AdbConnectionAsync.read_string`
    * :meth:`AdbConnectionAsync.read_sync_string`
    * :meth:`AdbConnectionAsync.reconnect`
    * :meth:`AdbConnectionAsync.send`
    * :meth:`AdbConnectionAsync.send_request`
    * :meth:`AdbConnectionAsync.set_device`
    * :attr:`AdbConnectionAsync.state`

"""


import logging

from . import constants
from . import exceptions
from .adb_connection import _raise_for_failure
from .adb_request import encode_request, parse_length, parse_status, unpack_sync_length
from .transport.base_transport_async import BaseTransportAsync


_LOGGER = logging.getLogger(__name__)


class AdbConnectionAsync(object):
    """A single asyncio connection to the adb server.

    Parameters
    ----------
    transport : BaseTransportAsync
        A transport for communicating with the adb server; must be an instance of a subclass of :class:`~adb_host.transport.base_transport_async.BaseTransportAsync`
    encoding : str
        The text encoding used for requests and length-prefixed strings
    default_transport_timeout_s : float, None
        Default timeout in seconds for transport reads and writes, or ``None`` to wait indefinitely

    Raises
    ------
    adb_host.exceptions.AdbConnectionError
        The passed ``transport`` is not an instance of a subclass of :class:`~adb_host.transport.base_transport_async.BaseTransportAsync`

    Attributes
    ----------
    _default_transport_timeout_s : float, None
        Default timeout in seconds for transport reads and writes, or ``None`` to wait indefinitely
    _device_serial : str, None
        The serial of the device to which this connection has been scoped
    _line_buffer : bytearray
        Data read by :meth:`read_line` that is not part of a complete line yet
    _requests_sent : bool
        Whether any request has been sent on this connection
    _state : str
        One of :const:`~adb_host.constants.CONNECTION_UNOPENED`, :const:`~adb_host.constants.CONNECTION_OPEN`, or :const:`~adb_host.constants.CONNECTION_CLOSED`
    _transport : BaseTransportAsync
        The transport that is used to talk to the adb server
    encoding : str
        The text encoding used for requests and length-prefixed strings

    """
    def __init__(self, transport, encoding=constants.DEFAULT_ENCODING, default_transport_timeout_s=None):
        if not isinstance(transport, BaseTransportAsync):
            raise exceptions.AdbConnectionError("`transport` must be an instance of a subclass of `BaseTransportAsync`")

        self._transport = transport
        self._default_transport_timeout_s = default_transport_timeout_s
        self.encoding = encoding

        self._device_serial = None
        self._line_buffer = bytearray()
        self._requests_sent = False
        self._state = constants.CONNECTION_UNOPENED

    async def __aenter__(self):
        if self._state == constants.CONNECTION_UNOPENED:
            await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.close()

    def __repr__(self):
        return 'AdbConnectionAsync({!r}, state={!r})'.format(self._transport, self._state)

    @property
    def device_serial(self):
        """The serial of the device to which this connection has been scoped, or ``None``.

        Returns
        -------
        str, None
            ``self._device_serial``

        """
        return self._device_serial

    @property
    def state(self):
        """The state of the connection.

        Returns
        -------
        str
            ``self._state``

        """
        return self._state

    # ======================================================================= #
    #                                                                         #
    #                             Close & Connect                             #
    #                                                                         #
    # ======================================================================= #
    async def close(self):
        """Close the connection; it cannot be reused afterwards.

        """
        if self._state == constants.CONNECTION_CLOSED:
            return

        self._state = constants.CONNECTION_CLOSED
        _LOGGER.debug("Closing %r", self._transport)
        await self._transport.close()

    async def connect(self, transport_timeout_s=None):
        """Open the connection to the adb server.

        Parameters
        ----------
        transport_timeout_s : float, None
            Timeout in seconds for establishing the connection, or ``None`` to use the default

        """
        if self._state == constants.CONNECTION_CLOSED:
            raise exceptions.AdbConnectionError('A closed connection cannot be reopened')

        await self._transport.connect(self._get_transport_timeout_s(transport_timeout_s))

        if self._state == constants.CONNECTION_CLOSED:
            await self._transport.close()
            raise exceptions.AdbConnectionError('The connection was closed while connecting')

        self._state = constants.CONNECTION_OPEN

    async def reconnect(self, transport_timeout_s=None):
        """Close and reopen the transport to the same endpoint, without device scoping.

        Parameters
        ----------
        transport_timeout_s : float, None
            Timeout in seconds for establishing the connection, or ``None`` to use the default

        """
        if self._state == constants.CONNECTION_CLOSED:
            raise exceptions.AdbConnectionError('A closed connection cannot be reconnected')

        self._state = constants.CONNECTION_UNOPENED
        await self._transport.close()
        self._device_serial = None
        self._line_buffer = bytearray()
        self._requests_sent = False

        await self.connect(transport_timeout_s)

    # ======================================================================= #
    #                                                                         #
    #                                 Requests                                #
    #                                                                         #
    # ======================================================================= #
    async def send_request(self, command):
        """Send a ``####<command>`` request.

        Parameters
        ----------
        command : str
            The request, e.g., ``'host:version'``

        """
        self._requests_sent = True
        await self.send(encode_request(command, self.encoding))

    async def read_response(self):
        """Read a status reply and raise an exception if it is ``b'FAIL'``.

        """
        if not parse_status(await self.read(4)):
            _raise_for_failure(await self.read_string())

    async def read_string(self):
        """Read a string preceded by four hexadecimal digits giving its length.

        Returns
        -------
        str
            The decoded string

        """
        length = parse_length(await self.read(constants.LENGTH_PREFIX_SIZE))
        return (await self.read(length)).decode(self.encoding, constants.DECODE_ERRORS)

    async def read_sync_string(self):
        """Read a string preceded by a 4 byte little-endian length.

        Returns
        -------
        str
            The decoded string

        """
        length = unpack_sync_length(await self.read(4))
        return (await self.read(length)).decode(self.encoding, constants.DECODE_ERRORS)

    async def set_device(self, serial):
        """Route all subsequent requests on this connection to the device ``serial``.

        Parameters
        ----------
        serial : str
            The serial of the device

        """
        if self._requests_sent:
            _LOGGER.debug("Not scoping %r to device %s because a request has already been sent", self, serial)
            return

        await self.send_request(constants.TRANSPORT_REQUEST.format(serial))
        await self.read_response()
        self._device_serial = serial

    # ======================================================================= #
    #                                                                         #
    #                                 Raw I/O                                 #
    #                                                                         #
    # ======================================================================= #
    async def read(self, numbytes, transport_timeout_s=None):
        """Read exactly ``numbytes`` bytes.

        Parameters
        ----------
        numbytes : int
            The number of bytes to read
        transport_timeout_s : float, None
            Timeout in seconds for each transport read, or ``None`` to use the default

        Returns
        -------
        bytes
            The data

        """
        self._check_open()
        data = bytearray()

        if self._line_buffer:
            data += self._line_buffer[:numbytes]
            self._line_buffer = self._line_buffer[numbytes:]

        while len(data) < numbytes:
            temp = await self._bulk_read(numbytes - len(data), transport_timeout_s)
            if not temp:
                raise exceptions.AdbConnectionResetError('The adb server closed the connection after {} of {} bytes'.format(len(data), numbytes))

            data += temp

        return bytes(data)

    async def read_line(self, transport_timeout_s=None):
        """Read the next line.

        Parameters
        ----------
        transport_timeout_s : float, None
            Timeout in seconds for each transport read, or ``None`` to use the default

        Returns
        -------
        bytes, None
            The line without its line terminator, or ``None`` at the end of the stream

        """
        self._check_open()
        while b'\n' not in self._line_buffer:
            temp = await self._bulk_read(constants.SHELL_READ_SIZE, transport_timeout_s)
            if not temp:
                if not self._line_buffer:
                    return None

                line, self._line_buffer = bytes(self._line_buffer), bytearray()
                return line.rstrip(b'\r')

            self._line_buffer += temp

        idx = self._line_buffer.index(b'\n')
        line = bytes(self._line_buffer[:idx])
        self._line_buffer = self._line_buffer[idx + 1:]
        return line.rstrip(b'\r')

    async def send(self, data, transport_timeout_s=None):
        """Send all of ``data``.

        Parameters
        ----------
        data : bytes
            The data to be sent
        transport_timeout_s : float, None
            Timeout in seconds for each transport write, or ``None`` to use the default

        """
        self._check_open()
        timeout = self._get_transport_timeout_s(transport_timeout_s)

        view = memoryview(data)
        while view:
            _LOGGER.debug("bulk_write(%d): %.1000r", len(view), bytes(view[:1000]))
            sent = await self._transport.bulk_write(bytes(view), timeout)
            view = view[sent:]

    async def _bulk_read(self, numbytes, transport_timeout_s):
        """Read up to ``numbytes`` bytes from the transport.

        Parameters
        ----------
        numbytes : int
            The maximum number of bytes to read
        transport_timeout_s : float, None
            Timeout in seconds for the transport read, or ``None`` to use the default

        Returns
        -------
        bytes
            The data; ``b''`` means that the adb server closed the connection

        """
        self._check_open()
        temp = await self._transport.bulk_read(numbytes, self._get_transport_timeout_s(transport_timeout_s))
        _LOGGER.debug("bulk_read(%d): %.1000r", numbytes, temp)

        if not temp:
            self._check_open()

        return temp

    def _check_open(self):
        if self._state != constants.CONNECTION_OPEN:
            raise exceptions.AdbConnectionError('The connection is {}'.format(self._state))

    def _get_transport_timeout_s(self, transport_timeout_s):
        return transport_timeout_s if transport_timeout_s is not None else self._default_transport_timeout_s
