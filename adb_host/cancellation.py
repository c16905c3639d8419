# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""A thread-safe cancellation signal.

Blocking reads cannot be interrupted directly, so long-running operations register a callback that closes their
connection; cancelling runs the callback and the blocked read fails.  The operation then checks
:attr:`CancellationToken.is_cancellation_requested` to tell a deliberate shutdown from a genuine error.

* :class:`CancellationToken`

    * :meth:`CancellationToken.cancel`
    * :attr:`CancellationToken.is_cancellation_requested`
    * :meth:`CancellationToken.raise_if_cancellation_requested`
    * :meth:`CancellationToken.register`
    * :meth:`CancellationToken.wait`

"""


import logging
from threading import Event, Lock

from . import exceptions


_LOGGER = logging.getLogger(__name__)


class CancellationToken(object):
    """A signal that an operation should stop.

    Attributes
    ----------
    _callbacks : list
        The registered callbacks that have not yet been run or unregistered
    _event : threading.Event
        Set once :meth:`cancel` has been called
    _lock : threading.Lock
        A lock for protecting ``_callbacks``

    """
    def __init__(self):
        self._callbacks = []
        self._event = Event()
        self._lock = Lock()

    @property
    def is_cancellation_requested(self):
        """Whether :meth:`cancel` has been called.

        Returns
        -------
        bool
            Whether cancellation has been requested

        """
        return self._event.is_set()

    def cancel(self):
        """Request cancellation and run the registered callbacks (only the first call has any effect).

        """
        with self._lock:
            if self._event.is_set():
                return

            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            _LOGGER.debug("Running cancellation callback %r", callback)
            callback()

    def raise_if_cancellation_requested(self):
        """Raise an :class:`~adb_host.exceptions.AdbCancelledError` if cancellation has been requested.

        """
        if self._event.is_set():
            raise exceptions.AdbCancelledError('The operation was cancelled')

    def register(self, callback):
        """Run ``callback`` when cancellation is requested.

        If cancellation has already been requested, ``callback`` is run immediately.

        Parameters
        ----------
        callback : function
            A function that takes no arguments

        Returns
        -------
        function
            Call this to unregister ``callback``

        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._unregister(callback)

        callback()
        return lambda: None

    def wait(self, timeout=None):
        """Block until cancellation is requested or ``timeout`` seconds have elapsed.

        Returns
        -------
        bool
            Whether cancellation has been requested

        """
        return self._event.wait(timeout)

    def _unregister(self, callback):
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
