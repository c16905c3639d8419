# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.  It incorporates work
# covered by the following license notice:
#
#
#   Copyright 2014 Google Inc. All rights reserved.
#
#   Licensed under the Apache License, Version 2.0 (the "License");
#   you may not use this file except in compliance with the License.
#   You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#   Unless required by applicable law or agreed to in writing, software
#   distributed under the License is distributed on an "AS IS" BASIS,
#   WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#   See the License for the specific language governing permissions and
#   limitations under the License.

"""ADB-related exceptions.

"""


class AdbCancelledError(Exception):
    """The operation was cancelled via its :class:`~adb_host.cancellation.CancellationToken`.

    """


class AdbCommandFailureException(Exception):
    """A ``b'FAIL'`` reply was received; the server's message is the exception message.

    """


class AdbConnectionError(Exception):
    """The connection to the adb server was refused, lost, or is not open.

    """


class AdbConnectionResetError(AdbConnectionError):
    """The adb server closed or reset the connection.

    """


class AdbServerError(Exception):
    """The adb server could not be started or stopped.

    """


class DeviceNotFoundError(AdbCommandFailureException):
    """The adb server does not know the requested device.

    """


class DevicePathInvalidError(Exception):
    """A file command was passed an invalid path.

    """


class DevicePathTooLongError(DevicePathInvalidError):
    """The device path is longer than :const:`adb_host.constants.MAX_PATH_LENGTH` bytes.

    """


class InvalidCommandError(Exception):
    """The request could not be encoded.

    """


class InvalidResponseError(Exception):
    """Got an invalid response to our command.

    """


class PushFailedError(AdbCommandFailureException):
    """Pushing a file failed for some reason.

    """


class ShellCommandUnresponsiveError(Exception):
    """Reading the output of a shell command failed without the command having been cancelled.

    """


class TcpTimeoutException(AdbConnectionError):
    """TCP connection timed read/write operation exceeded the allowed time.

    """
