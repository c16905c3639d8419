import struct

from adb_host import constants


class FileSyncMessage(object):  # pylint: disable=too-few-public-methods
    """A helper class for packing FileSync messages.

    Parameters
    ----------
    command : bytes
        One of :const:`adb_host.constants.FILESYNC_IDS`
    arg0 : int, None
        The value of the length field; defaults to ``len(data)``
    data : bytes
        The data that will be sent

    Attributes
    ----------
    arg0 : int
        The value of the length field
    command : int
        The input parameter ``command`` converted to an integer via :const:`adb_host.constants.FILESYNC_ID_TO_WIRE`
    data : bytes
        The data that will be sent

    """
    def __init__(self, command, arg0=None, data=b''):
        self.command = constants.FILESYNC_ID_TO_WIRE[command]
        self.arg0 = len(data) if arg0 is None else arg0
        self.data = data

    def pack(self):
        """Returns this message in an over-the-wire format.

        Returns
        -------
        bytes
            The message header

        """
        return struct.pack(b'<2I', self.command, self.arg0)


class FileSyncListMessage(object):  # pylint: disable=too-few-public-methods
    """A helper class for packing ``DENT`` and ``DONE`` replies to ``LIST``.

    Parameters
    ----------
    command : bytes
        ``b'DENT'`` or ``b'DONE'``
    mode : int
        The file mode
    size : int
        The file size
    mtime : int
        The modification time
    data : bytes
        The file name

    """
    def __init__(self, command, mode, size, mtime, data=b''):
        self.command = constants.FILESYNC_ID_TO_WIRE[command]
        self.mode = mode
        self.size = size
        self.mtime = mtime
        self.data = data

    def pack(self):
        """Returns this message in an over-the-wire format.

        Returns
        -------
        bytes
            The message header

        """
        return struct.pack(b'<I', self.command) + struct.pack(b'<Iii', self.mode, self.size, self.mtime) + struct.pack(b'<I', len(self.data))


class FileSyncStatMessage(object):  # pylint: disable=too-few-public-methods
    """A helper class for packing the reply to ``STAT``.

    Parameters
    ----------
    mode : int
        The file mode
    size : int
        The file size
    mtime : int
        The modification time

    """
    def __init__(self, mode, size, mtime):
        self.command = constants.FILESYNC_ID_TO_WIRE[constants.STAT]
        self.mode = mode
        self.size = size
        self.mtime = mtime
        self.data = b''

    def pack(self):
        """Returns this message in an over-the-wire format.

        Returns
        -------
        bytes
            The message

        """
        return struct.pack(b'<I', self.command) + struct.pack(b'<Iii', self.mode, self.size, self.mtime)


def join_messages(*messages):
    """Pack ``messages`` and their data into one bytestring.

    """
    return b''.join([message.pack() + message.data for message in messages])
