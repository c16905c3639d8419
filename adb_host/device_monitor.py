# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Implement the :class:`DeviceMonitor` class, which follows ``host:track-devices`` on a background thread.

.. rubric:: Contents

* :class:`DeviceEvent`
* :class:`DeviceMonitor`

    * :meth:`DeviceMonitor._device_monitor_loop`
    * :meth:`DeviceMonitor._notify`
    * :meth:`DeviceMonitor._process_incoming_device_data`
    * :meth:`DeviceMonitor._recover`
    * :meth:`DeviceMonitor._start_tracking`
    * :meth:`DeviceMonitor._update_devices`
    * :meth:`DeviceMonitor.add_listener`
    * :meth:`DeviceMonitor.close`
    * :attr:`DeviceMonitor.devices`
    * :meth:`DeviceMonitor.dispose`
    * :attr:`DeviceMonitor.is_running`
    * :meth:`DeviceMonitor.remove_listener`
    * :meth:`DeviceMonitor.start`

"""


from collections import namedtuple
import logging
from threading import Event, Lock, Thread, current_thread

from . import constants
from . import exceptions
from .cancellation import CancellationToken
from .device_data import parse_device_list


_LOGGER = logging.getLogger(__name__)


#: ``kind`` is one of :const:`~adb_host.constants.DEVICE_CONNECTED`, :const:`~adb_host.constants.DEVICE_CHANGED`,
#: or :const:`~adb_host.constants.DEVICE_DISCONNECTED`
DeviceEvent = namedtuple('DeviceEvent', ['kind', 'device'])


class DeviceMonitor(object):
    """Watch the adb server for devices that connect, change state, or disconnect.

    .. code-block:: python

       def on_event(event):
           print(event.kind, event.device.serial, event.device.state)

       monitor = DeviceMonitor(AdbConnection(TcpTransport()))
       monitor.add_listener(on_event)
       with monitor:
           ...

    Listeners are called on the monitor thread, after the device list has been updated.

    Parameters
    ----------
    connection : adb_host.adb_connection.AdbConnection
        A connection that is used for nothing but tracking devices; the monitor closes it when it is disposed
    server : adb_host.adb_server.AdbServer, None
        Used to restart the adb server when it resets the connection

    Attributes
    ----------
    _connection : adb_host.adb_connection.AdbConnection
        The tracking connection
    _devices : list[adb_host.device_data.DeviceData]
        The devices that are currently known
    _devices_lock : threading.Lock
        A lock for protecting ``_devices``
    _disposed : bool
        Whether :meth:`dispose` has been called
    _first_update : threading.Event
        Set once the first device list has been processed or the loop has ended
    _has_devices : bool
        Whether at least one device list has been processed
    _listeners : list
        The functions that receive a :class:`DeviceEvent`
    _server : adb_host.adb_server.AdbServer, None
        Used to restart the adb server when it resets the connection
    _state_lock : threading.Lock
        A lock for protecting ``_disposed`` and ``_thread``
    _thread : threading.Thread, None
        The thread that runs :meth:`_device_monitor_loop`
    _token : adb_host.cancellation.CancellationToken
        Cancelled by :meth:`dispose`
    error : Exception, None
        The error that ended the monitor loop, if any

    """
    def __init__(self, connection, server=None):
        self._connection = connection
        self._server = server

        self._devices = []
        self._devices_lock = Lock()
        self._disposed = False
        self._first_update = Event()
        self._has_devices = False
        self._listeners = []
        self._state_lock = Lock()
        self._thread = None
        self._token = CancellationToken()
        self.error = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.dispose()

    @property
    def devices(self):
        """A snapshot of the devices that are currently connected.

        The :class:`~adb_host.device_data.DeviceData` objects are the monitor's own and keep being updated.

        Returns
        -------
        list[adb_host.device_data.DeviceData]
            The devices

        """
        with self._devices_lock:
            return list(self._devices)

    @property
    def is_running(self):
        """Whether the monitor thread is running.

        Returns
        -------
        bool
            Whether the monitor thread is alive

        """
        return self._thread is not None and self._thread.is_alive()

    def add_listener(self, callback):
        """Call ``callback`` with a :class:`DeviceEvent` for every change.

        Parameters
        ----------
        callback : function
            A function that accepts a :class:`DeviceEvent`

        """
        self._listeners.append(callback)

    def remove_listener(self, callback):
        """Stop calling ``callback``.

        Parameters
        ----------
        callback : function
            A function that was passed to :meth:`add_listener`

        """
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ======================================================================= #
    #                                                                         #
    #                             Start & Dispose                             #
    #                                                                         #
    # ======================================================================= #
    def start(self):
        """Start monitoring and wait until the first device list has been processed.

        Calling this on a monitor that is already started has no effect.

        Raises
        ------
        adb_host.exceptions.AdbConnectionError
            The monitor has been disposed
        Exception
            The monitor loop ended before the first device list was received; this is the error that ended it

        """
        with self._state_lock:
            if self._disposed:
                raise exceptions.AdbConnectionError('The device monitor has been disposed')

            if self._thread is not None:
                return

            self._token.register(self._connection.close)
            self._thread = Thread(target=self._device_monitor_loop, name='adb-device-monitor')
            self._thread.daemon = True
            self._thread.start()

        self._first_update.wait()

        if not self._has_devices and self.error is not None:
            raise self.error

    def dispose(self):
        """Stop monitoring and close the connection; calling this more than once is harmless.

        """
        with self._state_lock:
            if self._disposed:
                return

            self._disposed = True
            thread = self._thread

        self._token.cancel()

        if thread is not None and thread is not current_thread():
            thread.join()

        self._connection.close()
        self._first_update.set()

    close = dispose

    # ======================================================================= #
    #                                                                         #
    #                              Hidden Methods                             #
    #                                                                         #
    # ======================================================================= #
    def _device_monitor_loop(self):
        """Read device lists until the monitor is disposed or an unrecoverable error occurs.

        """
        try:
            if self._connection.state == constants.CONNECTION_UNOPENED:
                self._connection.connect()

            tracking = False
            while not self._token.is_cancellation_requested:
                try:
                    if not tracking:
                        self._start_tracking()
                        tracking = True

                    data = self._connection.read_string()

                except exceptions.AdbConnectionResetError as exc:
                    if self._token.is_cancellation_requested:
                        break

                    _LOGGER.warning("The adb server reset the device monitor connection: %s", exc)
                    self._recover()
                    tracking = False
                    continue

                self._process_incoming_device_data(data)

        except Exception as exc:  # pylint: disable=broad-except
            if self._token.is_cancellation_requested:
                _LOGGER.debug("The device monitor was stopped: %r", exc)
            else:
                _LOGGER.exception("The device monitor stopped unexpectedly")
                self.error = exc

        finally:
            self._first_update.set()

    def _notify(self, kind, devices):
        """Send a :class:`DeviceEvent` of type ``kind`` to every listener for each device in ``devices``.

        Parameters
        ----------
        kind : str
            The type of the events
        devices : list[adb_host.device_data.DeviceData]
            The devices

        """
        for device in devices:
            if kind != constants.DEVICE_CHANGED:
                _LOGGER.info("Device %s %s (%s)", device.serial, kind, device.state)

            event = DeviceEvent(kind, device)
            for callback in list(self._listeners):
                callback(event)

    def _process_incoming_device_data(self, data):
        """Parse one ``host:track-devices`` payload and update the device list.

        Parameters
        ----------
        data : str
            Lines of the form ``<serial>\\t<state>``

        """
        self._update_devices(parse_device_list(data))

        if not self._has_devices:
            self._has_devices = True
            self._first_update.set()

    def _recover(self):
        """Restart the adb server (if possible) and reopen the tracking connection.

        """
        if self._server is not None:
            _LOGGER.info("Restarting the adb server")
            self._server.restart_server()

        self._connection.reconnect()

    def _start_tracking(self):
        """Send the ``host:track-devices`` request and read the response.

        """
        self._connection.send_request(constants.TRACK_DEVICES_REQUEST)
        self._connection.read_response()

    def _update_devices(self, devices):
        """Merge a new device list into the known devices and send the resulting events.

        Known devices are updated in place.  The events are sent after the lock has been released: first the
        connected and changed devices, in the order in which they were listed, and then the disconnected devices.

        Parameters
        ----------
        devices : list[adb_host.device_data.DeviceData]
            The devices that the adb server currently reports

        """
        updated = []

        with self._devices_lock:
            known = {device.serial: device for device in self._devices}
            listed = set()

            for device in devices:
                listed.add(device.serial)
                existing = known.get(device.serial)

                if existing is None:
                    self._devices.append(device)
                    known[device.serial] = device
                    updated.append((constants.DEVICE_CONNECTED, device))
                else:
                    existing.state = device.state
                    updated.append((constants.DEVICE_CHANGED, existing))

            disconnected = [device for device in self._devices if device.serial not in listed]
            self._devices = [device for device in self._devices if device.serial in listed]

        for kind, device in updated:
            self._notify(kind, [device])

        self._notify(constants.DEVICE_DISCONNECTED, disconnected)
