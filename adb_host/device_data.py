# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Classes that describe the devices known to the adb server.

.. rubric:: Contents

* :class:`DeviceData`

    * :meth:`DeviceData.from_adb_data`
    * :attr:`DeviceData.serial`

* :class:`DeviceState`

    * :meth:`DeviceState.parse`

* :func:`parse_device_list`

"""


import re

from . import constants
from . import exceptions


#: Matches one line of ``host:devices-l`` or ``host:track-devices`` output
DEVICE_DATA_RE = re.compile(r'^(?P<serial>\S+)\s+(?P<state>no permissions|\S+)(?P<message>.*?)'
                            r'(?:\s+usb:(?P<usb>\S+))?'
                            r'(?:\s+product:(?P<product>\S+))?'
                            r'(?:\s+model:(?P<model>\S+))?'
                            r'(?:\s+device:(?P<name>\S+))?'
                            r'(?:\s+features:(?P<features>\S+))?'
                            r'(?:\s+transport_id:(?P<transport_id>\S+))?\s*$')


class DeviceState(object):  # pylint: disable=too-few-public-methods
    """The states that the adb server reports for a device.

    """
    OFFLINE = constants.STATE_OFFLINE
    ONLINE = constants.STATE_ONLINE
    UNAUTHORIZED = constants.STATE_UNAUTHORIZED
    UNKNOWN = constants.STATE_UNKNOWN
    BOOTLOADER = constants.STATE_BOOTLOADER
    HOST = constants.STATE_HOST
    RECOVERY = constants.STATE_RECOVERY
    NO_PERMISSIONS = constants.STATE_NO_PERMISSIONS
    AUTHORIZING = constants.STATE_AUTHORIZING
    CONNECTING = constants.STATE_CONNECTING
    SIDELOAD = constants.STATE_SIDELOAD
    DOWNLOAD = constants.STATE_DOWNLOAD

    @staticmethod
    def parse(value):
        """Convert the state string sent by the adb server into a state.

        Parameters
        ----------
        value : str
            The state, e.g., ``'device'``

        Returns
        -------
        str
            One of :const:`adb_host.constants.DEVICE_STATES`; unrecognised values map to :attr:`UNKNOWN`

        """
        value = value.strip().lower()
        return value if value in constants.DEVICE_STATES else DeviceState.UNKNOWN


class DeviceData(object):
    """A device that is known to the adb server.

    The serial identifies the device and cannot be changed.  The :class:`~adb_host.device_monitor.DeviceMonitor`
    updates ``state`` in place, so anyone holding a reference sees state transitions.

    Parameters
    ----------
    serial : str
        The serial of the device
    state : str
        One of :const:`adb_host.constants.DEVICE_STATES`
    product : str, None
        The product name
    model : str, None
        The model name
    name : str, None
        The device name
    features : str, None
        The comma-separated features reported by the adb server
    usb : str, None
        The USB port path
    transport_id : str, None
        The adb transport id
    message : str, None
        Any text between the state and the descriptive fields, e.g., the explanation for ``no permissions``

    """
    def __init__(self, serial, state=constants.STATE_UNKNOWN, product=None, model=None, name=None, features=None, usb=None, transport_id=None, message=None):
        self._serial = serial
        self.state = state
        self.product = product
        self.model = model
        self.name = name
        self.features = features
        self.usb = usb
        self.transport_id = transport_id
        self.message = message

    def __repr__(self):
        return 'DeviceData(serial={!r}, state={!r})'.format(self._serial, self.state)

    @property
    def serial(self):
        """The serial of the device.

        Returns
        -------
        str
            ``self._serial``

        """
        return self._serial

    @classmethod
    def from_adb_data(cls, data):
        """Create a :class:`DeviceData` from one line of a device list.

        Parameters
        ----------
        data : str
            A line such as ``'emulator-5554\\tdevice'`` or ``'0123456789ABCDEF device usb:1-1 product:x model:y device:z transport_id:1'``

        Returns
        -------
        DeviceData
            The parsed device

        Raises
        ------
        adb_host.exceptions.InvalidResponseError
            ``data`` is not a device list line

        """
        match = DEVICE_DATA_RE.match(data)
        if not match:
            raise exceptions.InvalidResponseError('Invalid device list data: {!r}'.format(data))

        return cls(match.group('serial'),
                   DeviceState.parse(match.group('state')),
                   product=match.group('product'),
                   model=match.group('model'),
                   name=match.group('name'),
                   features=match.group('features'),
                   usb=match.group('usb'),
                   transport_id=match.group('transport_id'),
                   message=match.group('message').strip() or None)


def parse_device_list(data):
    """Parse a device list, one device per line.

    Parameters
    ----------
    data : str
        Lines separated by ``\\n`` or ``\\r\\n``; empty lines are ignored

    Returns
    -------
    list[DeviceData]
        The devices, in the order in which they were listed

    """
    return [DeviceData.from_adb_data(line) for line in data.splitlines() if line.strip()]
