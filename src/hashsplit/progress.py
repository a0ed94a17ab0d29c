# Copyright 2024 Matt Chaput. All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
#    1. Redistributions of source code must retain the above copyright notice,
#       this list of conditions and the following disclaimer.
#
#    2. Redistributions in binary form must reproduce the above copyright
#       notice, this list of conditions and the following disclaimer in the
#       documentation and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY MATT CHAPUT ``AS IS'' AND ANY EXPRESS OR
# IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE IMPLIED WARRANTIES OF
# MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO
# EVENT SHALL MATT CHAPUT OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT
# LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA,
# OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING
# NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
#
# The views and conclusions contained in the software and documentation are
# those of the authors and should not be interpreted as representing official
# policies, either expressed or implied, of Matt Chaput.


"""Observers that report how far a split has got.

The splitter calls ``start(phase)``, then ``update(phase, percent)`` any
number of times, then ``finish(phase)`` for the hashing pass and for each
shard pass. Reporters only display; they never affect the split.
"""

import sys

from loguru import logger


class ProgressReporter:
    """Base class for progress reporters. All methods do nothing."""

    def start(self, phase):
        pass

    def update(self, phase, percent):
        pass

    def finish(self, phase):
        pass


class NullProgress(ProgressReporter):
    """Reports nothing. Used when no reporter is given."""


class ProgressBar(ProgressReporter):
    """Draws a single-line text progress bar, redrawn in place::

        [=========================>                        ]   50%

    :param stream: the file to draw on. Defaults to ``sys.stderr``.
    :param width: the number of characters between the brackets.
    """

    def __init__(self, stream=None, width=50):
        self.stream = stream
        self.width = width
        self._last = None

    def render(self, percent):
        """Returns the bar for the given percentage as a string, without the
        leading carriage return.

        >>> ProgressBar(width=10).render(50)
        '[=====>    ]   50%'
        """
        percent = max(0, min(100, int(percent)))
        filled = percent * self.width // 100
        bar = "=" * filled
        if filled < self.width:
            bar += ">" + " " * (self.width - filled - 1)
        return f"[{bar}]   {percent}%"

    def _write(self, text):
        stream = self.stream or sys.stderr
        stream.write(text)
        stream.flush()

    def start(self, phase):
        self._last = None

    def update(self, phase, percent):
        percent = int(percent)
        # Only redraw when the number changes
        if percent != self._last:
            self._last = percent
            self._write("\r" + self.render(percent))

    def finish(self, phase):
        self._last = None
        self._write("\r" + self.render(100) + "\n")


class LogProgress(ProgressReporter):
    """Logs a debug message every ``step`` percent. Suitable for
    non-interactive runs where a redrawn bar would clutter the log.
    """

    def __init__(self, step=10):
        self.step = step
        self._next = 0

    def start(self, phase):
        self._next = 0
        logger.debug("{}: started", phase)

    def update(self, phase, percent):
        if percent >= self._next:
            logger.debug("{}: {}%", phase, percent)
            self._next = (percent // self.step + 1) * self.step

    def finish(self, phase):
        logger.debug("{}: done", phase)
