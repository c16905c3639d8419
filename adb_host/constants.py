# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Constants and configuration defaults used throughout the package.

"""


import stat


#: The address at which the adb server listens by default
DEFAULT_HOST = '127.0.0.1'

#: The port at which the adb server listens by default
DEFAULT_PORT = 5037

#: The port used by ``adbd`` on network-attached devices
DEFAULT_DEVICE_PORT = 5555

#: Environment variable that overrides :const:`DEFAULT_HOST` (honoured by the ``adb`` binary as well)
SERVER_ADDRESS_ENV = 'ANDROID_ADB_SERVER_ADDRESS'

#: Environment variable that overrides :const:`DEFAULT_PORT` (honoured by the ``adb`` binary as well)
SERVER_PORT_ENV = 'ANDROID_ADB_SERVER_PORT'

#: The text encoding applied to all length-prefixed strings
DEFAULT_ENCODING = 'utf-8'

#: How undecodable bytes are handled when decoding text
DECODE_ERRORS = 'backslashreplace'

#: The ``adb`` executable used to start the server
DEFAULT_ADB_PATH = 'adb'

#: Default timeout for running ``adb start-server``
DEFAULT_SERVER_START_TIMEOUT_S = 30.

#: Maximum payload length of a host request (4 hex digits)
MAX_REQUEST_LENGTH = 0xFFFF

#: Size of the hexadecimal length prefix of host requests and replies
LENGTH_PREFIX_SIZE = 4

# Host status replies
OKAY = b'OKAY'
FAIL = b'FAIL'

#: Sent first on a connection to route all subsequent requests to one device
TRANSPORT_REQUEST = 'host:transport:{}'

#: The long-poll request that streams device-list snapshots
TRACK_DEVICES_REQUEST = 'host:track-devices'

# FileSync command ids
DATA = b'DATA'
DENT = b'DENT'
DONE = b'DONE'
LIST = b'LIST'
QUIT = b'QUIT'
RECV = b'RECV'
SEND = b'SEND'
STAT = b'STAT'

FILESYNC_IDS = (DATA, DENT, DONE, FAIL, LIST, OKAY, QUIT, RECV, SEND, STAT)

FILESYNC_ID_TO_WIRE = {cmd_id: sum(c << (i * 8) for i, c in enumerate(bytearray(cmd_id))) for cmd_id in FILESYNC_IDS}
FILESYNC_WIRE_TO_ID = {wire: cmd_id for cmd_id, wire in FILESYNC_ID_TO_WIRE.items()}

#: A FileSync request header: the command id and a length (or, for ``DONE``, a timestamp)
FILESYNC_HEADER_FORMAT = b'<2I'

#: The record that follows a ``STAT`` or ``DENT`` reply: mode, size, and mtime
FILESYNC_STAT_FORMAT = b'<Iii'

#: The size of :const:`FILESYNC_STAT_FORMAT`
FILESYNC_STAT_SIZE = 12

#: Size of the id + length header that precedes the payload of a ``DATA`` frame
FILESYNC_DATA_HEADER_SIZE = 8

#: Default maximum size of a FileSync data block, header included
MAX_BUFFER_SIZE = 64 * 1024

#: The longest path that the sync service accepts
MAX_PATH_LENGTH = 1024

#: Default mode for files pushed to the device
DEFAULT_PUSH_MODE = stat.S_IFREG | stat.S_IRUSR | stat.S_IWUSR | stat.S_IRGRP | stat.S_IROTH

#: Number of bytes requested per read when streaming shell output
SHELL_READ_SIZE = 4096

# Device states, as reported by the adb server
STATE_OFFLINE = 'offline'
STATE_ONLINE = 'device'
STATE_UNAUTHORIZED = 'unauthorized'
STATE_UNKNOWN = 'unknown'
STATE_BOOTLOADER = 'bootloader'
STATE_HOST = 'host'
STATE_RECOVERY = 'recovery'
STATE_NO_PERMISSIONS = 'no permissions'
STATE_AUTHORIZING = 'authorizing'
STATE_CONNECTING = 'connecting'
STATE_SIDELOAD = 'sideload'
STATE_DOWNLOAD = 'download'

DEVICE_STATES = (STATE_OFFLINE, STATE_ONLINE, STATE_UNAUTHORIZED, STATE_UNKNOWN, STATE_BOOTLOADER, STATE_HOST, STATE_RECOVERY,
                 STATE_NO_PERMISSIONS, STATE_AUTHORIZING, STATE_CONNECTING, STATE_SIDELOAD, STATE_DOWNLOAD)

# Device monitor events
DEVICE_CONNECTED = 'connected'
DEVICE_CHANGED = 'changed'
DEVICE_DISCONNECTED = 'disconnected'

# Connection states
CONNECTION_UNOPENED = 'unopened'
CONNECTION_OPEN = 'open'
CONNECTION_CLOSED = 'closed'
