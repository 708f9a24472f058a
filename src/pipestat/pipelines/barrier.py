"""Start barrier that holds every stage until the whole pipeline is wired.

The orchestrator blocks the release signal before forking, so every child is
born with it blocked. A release sent before a child reaches :meth:`wait`
stays pending and is picked up by ``sigwait`` the moment the child asks for
it, which means a release can never be lost.
"""

from __future__ import annotations

import os
import signal
from typing import Iterable, Optional, Set

from ..logging_utils import get_logger


class SignalBarrier:
    def __init__(self, release_signal: signal.Signals = signal.SIGUSR1):
        self.release_signal = signal.Signals(release_signal)
        self.logger = get_logger("SignalBarrier")
        self._saved_mask: Optional[Set[signal.Signals]] = None

    @property
    def armed(self) -> bool:
        return self._saved_mask is not None

    def arm(self) -> None:
        """Block the release signal in the calling thread. Must precede any fork."""
        if self.armed:
            return
        self._saved_mask = signal.pthread_sigmask(signal.SIG_BLOCK, {self.release_signal})
        self.logger.debug("Armed barrier on %s", self.release_signal.name)

    def disarm(self) -> None:
        if not self.armed:
            return
        signal.pthread_sigmask(signal.SIG_SETMASK, self._saved_mask)
        self._saved_mask = None

    def wait(self) -> None:
        """Suspend the calling child until the release signal arrives."""
        while True:
            received = signal.sigwait({self.release_signal})
            if received == self.release_signal:
                return

    def restore(self) -> None:
        """Unblock the release signal in a released child so the exec'd program starts clean."""
        if self._saved_mask is not None:
            signal.pthread_sigmask(signal.SIG_SETMASK, self._saved_mask)

    def release(self, pids: Iterable[int]) -> int:
        sent = 0
        for pid in pids:
            os.kill(pid, self.release_signal)
            sent += 1
        self.logger.debug("Released %s stages", sent)
        return sent

    def __enter__(self) -> "SignalBarrier":
        self.arm()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disarm()
