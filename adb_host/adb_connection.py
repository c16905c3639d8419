# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement the :class:`AdbConnection` class, which owns one connection to the adb server.

.. rubric:: Contents

* :class:`AdbConnection`

    * :meth:`AdbConnection.close`
    * :meth:`AdbConnection.connect`
    * :meth:`AdbConnection.read`
    * :meth:`AdbConnection.read_line`
    * :meth:`AdbConnection.read_response`
    * :meth:`AdbConnection.read_string`
    * :meth:`AdbConnection.read_sync_string`
    * :meth:`AdbConnection.reconnect`
    * :meth:`AdbConnection.send`
    * :meth:`AdbConnection.send_request`
    * :meth:`AdbConnection.set_device`
    * :attr:`AdbConnection.state`

"""


import logging
from threading import Lock

from . import constants
from . import exceptions
from .adb_request import encode_request, read_length_prefixed_string, read_status, unpack_sync_length
from .transport.base_transport import BaseTransport


_LOGGER = logging.getLogger(__name__)


def _raise_for_failure(message):
    """Raise the exception that corresponds to a ``b'FAIL'`` message.

    Parameters
    ----------
    message : str
        The message that followed ``b'FAIL'``

    """
    if message.startswith('device') and 'not found' in message:
        raise exceptions.DeviceNotFoundError(message)

    raise exceptions.AdbCommandFailureException(message)


class AdbConnection(object):
    """A single connection to the adb server.

    A connection is unopened until :meth:`connect` is called and closed for good once :meth:`close` is called.
    Requests and replies on one connection are strictly ordered; use a separate connection per concurrent operation.
    The only method that may be called from another thread is :meth:`close`, which unblocks a pending read.

    Parameters
    ----------
    transport : BaseTransport
        A transport for communicating with the adb server; must be an instance of a subclass of :class:`~adb_host.transport.base_transport.BaseTransport`
    encoding : str
        The text encoding used for requests and length-prefixed strings
    default_transport_timeout_s : float, None
        Default timeout in seconds for transport reads and writes, or ``None`` to block

    Raises
    ------
    adb_host.exceptions.AdbConnectionError
        The passed ``transport`` is not an instance of a subclass of :class:`~adb_host.transport.base_transport.BaseTransport`

    Attributes
    ----------
    _default_transport_timeout_s : float, None
        Default timeout in seconds for transport reads and writes, or ``None`` to block
    _device_serial : str, None
        The serial of the device to which this connection has been scoped
    _line_buffer : bytearray
        Data read by :meth:`read_line` that is not part of a complete line yet
    _requests_sent : bool
        Whether any request has been sent on this connection
    _state : str
        One of :const:`~adb_host.constants.CONNECTION_UNOPENED`, :const:`~adb_host.constants.CONNECTION_OPEN`, or :const:`~adb_host.constants.CONNECTION_CLOSED`
    _state_lock : Lock
        A lock for protecting ``_state`` (never held during I/O)
    _transport : BaseTransport
        The transport that is used to talk to the adb server
    encoding : str
        The text encoding used for requests and length-prefixed strings

    """
    def __init__(self, transport, encoding=constants.DEFAULT_ENCODING, default_transport_timeout_s=None):
        if not isinstance(transport, BaseTransport):
            raise exceptions.AdbConnectionError("`transport` must be an instance of a subclass of `BaseTransport`")

        self._transport = transport
        self._default_transport_timeout_s = default_transport_timeout_s
        self.encoding = encoding

        self._device_serial = None
        self._line_buffer = bytearray()
        self._requests_sent = False
        self._state = constants.CONNECTION_UNOPENED
        self._state_lock = Lock()

    def __enter__(self):
        if self._state == constants.CONNECTION_UNOPENED:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __repr__(self):
        return 'AdbConnection({!r}, state={!r})'.format(self._transport, self._state)

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
            One of :const:`~adb_host.constants.CONNECTION_UNOPENED`, :const:`~adb_host.constants.CONNECTION_OPEN`, or :const:`~adb_host.constants.CONNECTION_CLOSED`

        """
        return self._state

    # ======================================================================= #
    #                                                                         #
    #                             Close & Connect                             #
    #                                                                         #
    # ======================================================================= #
    def close(self):
        """Close the connection; it cannot be reused afterwards.

        Calling this more than once is harmless.  A thread blocked in :meth:`read` fails promptly.

        """
        with self._state_lock:
            if self._state == constants.CONNECTION_CLOSED:
                return

            self._state = constants.CONNECTION_CLOSED

        _LOGGER.debug("Closing %r", self._transport)
        self._transport.close()

    def connect(self, transport_timeout_s=None):
        """Open the connection to the adb server.

        Parameters
        ----------
        transport_timeout_s : float, None
            Timeout in seconds for establishing the connection, or ``None`` to use the default

        Raises
        ------
        adb_host.exceptions.AdbConnectionError
            The connection is closed or could not be established

        """
        with self._state_lock:
            if self._state == constants.CONNECTION_CLOSED:
                raise exceptions.AdbConnectionError('A closed connection cannot be reopened')

        self._transport.connect(self._get_transport_timeout_s(transport_timeout_s))

        with self._state_lock:
            if self._state == constants.CONNECTION_CLOSED:
                # `close()` was called while connecting
                self._transport.close()
                raise exceptions.AdbConnectionError('The connection was closed while connecting')

            self._state = constants.CONNECTION_OPEN

    def reconnect(self, transport_timeout_s=None):
        """Close and reopen the transport to the same endpoint.

        Device scoping is not preserved; call :meth:`set_device` again if it is needed.

        Parameters
        ----------
        transport_timeout_s : float, None
            Timeout in seconds for establishing the connection, or ``None`` to use the default

        Raises
        ------
        adb_host.exceptions.AdbConnectionError
            The connection has been closed via :meth:`close`

        """
        with self._state_lock:
            if self._state == constants.CONNECTION_CLOSED:
                raise exceptions.AdbConnectionError('A closed connection cannot be reconnected')

            self._state = constants.CONNECTION_UNOPENED

        self._transport.close()
        self._device_serial = None
        self._line_buffer = bytearray()
        self._requests_sent = False

        self.connect(transport_timeout_s)

    # ======================================================================= #
    #                                                                         #
    #                                 Requests                                #
    #                                                                         #
    # ======================================================================= #
    def send_request(self, command):
        """Send a ``####<command>`` request.

        Parameters
        ----------
        command : str
            The request, e.g., ``'host:version'``

        """
        self._requests_sent = True
        self.send(encode_request(command, self.encoding))

    def read_response(self):
        """Read a status reply.

        Raises
        ------
        adb_host.exceptions.DeviceNotFoundError
            The adb server does not know the device
        adb_host.exceptions.AdbCommandFailureException
            The adb server replied ``b'FAIL'``
        adb_host.exceptions.InvalidResponseError
            The reply is neither ``b'OKAY'`` nor ``b'FAIL'``

        """
        response = read_status(self, self.encoding)
        if not response.okay:
            _raise_for_failure(response.message)

    def read_string(self):
        """Read a string preceded by four hexadecimal digits giving its length.

        Returns
        -------
        str
            The decoded string

        """
        return read_length_prefixed_string(self, self.encoding)

    def read_sync_string(self):
        """Read a string preceded by a 4 byte little-endian length, as used by the FileSync protocol.

        Returns
        -------
        str
            The decoded string

        """
        length = unpack_sync_length(self.read(4))
        return self.read(length).decode(self.encoding, constants.DECODE_ERRORS)

    def set_device(self, serial):
        """Route all subsequent requests on this connection to the device ``serial``.

        This has no effect once a request has been sent on this connection.

        Parameters
        ----------
        serial : str
            The serial of the device

        Raises
        ------
        adb_host.exceptions.DeviceNotFoundError
            The adb server does not know the device

        """
        if self._requests_sent:
            _LOGGER.debug("Not scoping %r to device %s because a request has already been sent", self, serial)
            return

        self.send_request(constants.TRANSPORT_REQUEST.format(serial))
        self.read_response()
        self._device_serial = serial

    # ======================================================================= #
    #                                                                         #
    #                                 Raw I/O                                 #
    #                                                                         #
    # ======================================================================= #
    def read(self, numbytes, transport_timeout_s=None):
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

        Raises
        ------
        adb_host.exceptions.AdbConnectionResetError
            The adb server closed the connection before ``numbytes`` bytes were read
        adb_host.exceptions.AdbConnectionError
            The connection is not open

        """
        self._check_open()
        data = bytearray()

        # Consume anything that `read_line` buffered first
        if self._line_buffer:
            data += self._line_buffer[:numbytes]
            self._line_buffer = self._line_buffer[numbytes:]

        while len(data) < numbytes:
            temp = self._bulk_read(numbytes - len(data), transport_timeout_s)
            if not temp:
                raise exceptions.AdbConnectionResetError('The adb server closed the connection after {} of {} bytes'.format(len(data), numbytes))

            data += temp

        return bytes(data)

    def read_line(self, transport_timeout_s=None):
        """Read the next line.

        Parameters
        ----------
        transport_timeout_s : float, None
            Timeout in seconds for each transport read, or ``None`` to use the default

        Returns
        -------
        bytes, None
            The line without its terminating ``b'\\n'`` (or ``b'\\r\\n'``), or ``None`` at the end of the stream

        """
        self._check_open()
        while b'\n' not in self._line_buffer:
            temp = self._bulk_read(constants.SHELL_READ_SIZE, transport_timeout_s)
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

    def send(self, data, transport_timeout_s=None):
        """Send all of ``data``.

        Parameters
        ----------
        data : bytes
            The data to be sent
        transport_timeout_s : float, None
            Timeout in seconds for each transport write, or ``None`` to use the default

        Raises
        ------
        adb_host.exceptions.AdbConnectionError
            The connection is not open

        """
        self._check_open()
        timeout = self._get_transport_timeout_s(transport_timeout_s)

        view = memoryview(data)
        while view:
            _LOGGER.debug("bulk_write(%d): %.1000r", len(view), bytes(view[:1000]))
            sent = self._transport.bulk_write(bytes(view), timeout)
            view = view[sent:]

    def _bulk_read(self, numbytes, transport_timeout_s):
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
        temp = self._transport.bulk_read(numbytes, self._get_transport_timeout_s(transport_timeout_s))
        _LOGGER.debug("bulk_read(%d): %.1000r", numbytes, temp)

        # A shut down socket reads as the end of the stream
        if not temp:
            self._check_open()

        return temp

    def _check_open(self):
        """Raise an exception if the connection is not open.

        Raises
        ------
        adb_host.exceptions.AdbConnectionError
            The connection is unopened or closed

        """
        if self._state != constants.CONNECTION_OPEN:
            raise exceptions.AdbConnectionError('The connection is {}'.format(self._state))

    def _get_transport_timeout_s(self, transport_timeout_s):
        """Use the provided ``transport_timeout_s`` if it is not ``None``; otherwise, use ``self._default_transport_timeout_s``

        Parameters
        ----------
        transport_timeout_s : float, None
            The potential transport timeout

        Returns
        -------
        float, None
            ``transport_timeout_s`` if it is not ``None``; otherwise, ``self._default_transport_timeout_s``

        """
        return transport_timeout_s if transport_timeout_s is not None else self._default_transport_timeout_s
