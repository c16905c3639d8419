# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Sinks for the line-by-line output of shell commands.

* :class:`ShellOutputReceiver`
* :class:`CollectingOutputReceiver`
* :class:`CallbackOutputReceiver`

"""


class ShellOutputReceiver(object):
    """The interface used by :meth:`adb_host.adb_client.AdbClient.execute_remote_command`.

    ``add_output`` is called once per line of output and ``flush`` exactly once when the command ends, whether it
    finished, was cancelled, or failed.

    """
    def add_output(self, line):
        """Receive one line of output (without its line terminator).

        Parameters
        ----------
        line : str
            The line

        """
        raise NotImplementedError

    def flush(self):
        """Called once after the last line.

        """


class CollectingOutputReceiver(ShellOutputReceiver):
    """Store all output in memory.

    Attributes
    ----------
    flushed : bool
        Whether :meth:`flush` has been called
    lines : list[str]
        The lines received so far

    """
    def __init__(self):
        self.lines = []
        self.flushed = False

    def add_output(self, line):
        self.lines.append(line)

    def flush(self):
        self.flushed = True

    @property
    def output(self):
        """All the lines received so far, joined by ``'\\n'``.

        Returns
        -------
        str
            The output

        """
        return '\n'.join(self.lines)


class CallbackOutputReceiver(ShellOutputReceiver):
    """Pass each line to a function.

    Parameters
    ----------
    callback : function
        A function that accepts one line of output
    flush_callback : function, None
        A function with no arguments that is called by :meth:`flush`

    """
    def __init__(self, callback, flush_callback=None):
        self._callback = callback
        self._flush_callback = flush_callback

    def add_output(self, line):
        self._callback(line)

    def flush(self):
        if self._flush_callback:
            self._flush_callback()
