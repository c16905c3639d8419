# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Functions for encoding requests to and decoding replies from the adb server.

.. rubric:: Contents

* :class:`AdbResponse`
* :func:`decode_request`
* :func:`encode_request`
* :func:`pack_sync_request`
* :func:`parse_length`
* :func:`parse_status`
* :func:`read_length_prefixed_string`
* :func:`read_status`
* :func:`read_version`
* :func:`unpack_sync_id`
* :func:`unpack_sync_length`

"""


from collections import namedtuple
import string
import struct

from . import constants
from . import exceptions


AdbResponse = namedtuple('AdbResponse', ['okay', 'message'])

_HEX_DIGITS = frozenset(string.hexdigits.encode('ascii'))


def encode_request(command, encoding=constants.DEFAULT_ENCODING):
    """Encode ``command`` in the ``####<payload>`` form understood by the adb server.

    Parameters
    ----------
    command : str
        The request, e.g., ``'host:version'``
    encoding : str
        The text encoding used for ``command``

    Returns
    -------
    bytes
        Four uppercase hex digits giving the length of the encoded command, followed by the encoded command

    Raises
    ------
    adb_host.exceptions.InvalidCommandError
        The encoded command is longer than :const:`adb_host.constants.MAX_REQUEST_LENGTH` bytes

    """
    payload = command.encode(encoding)
    if len(payload) > constants.MAX_REQUEST_LENGTH:
        raise exceptions.InvalidCommandError('The request is {} bytes long; the maximum is {} bytes'.format(len(payload), constants.MAX_REQUEST_LENGTH))

    return '{:04X}'.format(len(payload)).encode('ascii') + payload


def decode_request(data, encoding=constants.DEFAULT_ENCODING):
    """Decode a request that was encoded by :func:`encode_request`.

    Parameters
    ----------
    data : bytes
        The encoded request
    encoding : str
        The text encoding used for the command

    Returns
    -------
    str
        The command

    Raises
    ------
    adb_host.exceptions.InvalidResponseError
        The length prefix is malformed or does not match the payload

    """
    length = parse_length(data[:constants.LENGTH_PREFIX_SIZE])
    payload = data[constants.LENGTH_PREFIX_SIZE:]
    if len(payload) != length:
        raise exceptions.InvalidResponseError('Expected a {} byte payload, got {} bytes'.format(length, len(payload)))

    return payload.decode(encoding)


def parse_length(data):
    """Parse the four hexadecimal digits that precede host requests and replies.

    Parameters
    ----------
    data : bytes
        The length prefix

    Returns
    -------
    int
        The length

    Raises
    ------
    adb_host.exceptions.InvalidResponseError
        ``data`` is not exactly four hexadecimal digits

    """
    if len(data) != constants.LENGTH_PREFIX_SIZE or not all(c in _HEX_DIGITS for c in bytearray(data)):
        raise exceptions.InvalidResponseError('Expected a 4 digit hexadecimal length, got {!r}'.format(data))

    return int(data, 16)


def parse_status(data):
    """Parse a 4 byte status reply.

    Parameters
    ----------
    data : bytes
        The status reply

    Returns
    -------
    bool
        ``True`` for ``b'OKAY'``, ``False`` for ``b'FAIL'``

    Raises
    ------
    adb_host.exceptions.InvalidResponseError
        ``data`` is neither ``b'OKAY'`` nor ``b'FAIL'``

    """
    if data == constants.OKAY:
        return True

    if data == constants.FAIL:
        return False

    raise exceptions.InvalidResponseError('Expected {!r} or {!r}, got {!r}'.format(constants.OKAY, constants.FAIL, data))


def read_length_prefixed_string(connection, encoding=constants.DEFAULT_ENCODING):
    """Read four hex digits and then that many bytes of text.

    Parameters
    ----------
    connection : adb_host.adb_connection.AdbConnection
        The connection to read from
    encoding : str
        The text encoding

    Returns
    -------
    str
        The decoded string

    """
    length = parse_length(connection.read(constants.LENGTH_PREFIX_SIZE))
    if not length:
        return ''

    return connection.read(length).decode(encoding, constants.DECODE_ERRORS)


def read_status(connection, encoding=constants.DEFAULT_ENCODING):
    """Read a status reply and, for ``b'FAIL'``, the message that follows it.

    Parameters
    ----------
    connection : adb_host.adb_connection.AdbConnection
        The connection to read from
    encoding : str
        The text encoding of the failure message

    Returns
    -------
    AdbResponse
        Whether the reply was ``b'OKAY'`` and the failure message (empty if it was)

    """
    if parse_status(connection.read(4)):
        return AdbResponse(True, '')

    return AdbResponse(False, read_length_prefixed_string(connection, encoding))


def read_version(connection):
    """Read the reply to ``host:version``, a length-prefixed string of four hexadecimal digits.

    Parameters
    ----------
    connection : adb_host.adb_connection.AdbConnection
        The connection to read from

    Returns
    -------
    int
        The version of the adb server

    """
    length = parse_length(connection.read(constants.LENGTH_PREFIX_SIZE))
    return parse_length(connection.read(length))


def pack_sync_request(command_id, data=b'', size=None):
    """Pack a FileSync request.

    Parameters
    ----------
    command_id : bytes
        One of :const:`adb_host.constants.FILESYNC_IDS`
    data : bytes
        The payload
    size : int, None
        Overrides ``len(data)`` in the header; ``DONE`` carries a timestamp here

    Returns
    -------
    bytes
        The packed request

    """
    if size is None:
        size = len(data)

    return struct.pack(constants.FILESYNC_HEADER_FORMAT, constants.FILESYNC_ID_TO_WIRE[command_id], size) + data


def unpack_sync_id(data):
    """Convert the 4 wire bytes of a FileSync reply into its command id.

    Raises
    ------
    adb_host.exceptions.InvalidResponseError
        The bytes are not a known FileSync id

    """
    if len(data) != 4:
        raise exceptions.InvalidResponseError('Expected a 4 byte FileSync id, got {!r}'.format(data))

    wire, = struct.unpack(b'<I', data)
    if wire not in constants.FILESYNC_WIRE_TO_ID:
        raise exceptions.InvalidResponseError('Unknown FileSync id: {!r}'.format(data))

    return constants.FILESYNC_WIRE_TO_ID[wire]


def unpack_sync_length(data):
    """Convert a little-endian 4 byte length into an int."""
    return struct.unpack(b'<I', data)[0]
