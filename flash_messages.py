"""
Transient status messages ("flash messages") and the timeline that dismisses them.

A FlashBoard owns the list of message elements currently in the document.
Each element is processed exactly once: it gets the fixed overlay
presentation and is scheduled to fade out after DISPLAY_SECONDS and to be
removed FADE_SECONDS later.
"""
import heapq
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Set

logger = logging.getLogger(__name__)

FLASH_CLASS = 'flash-message'
KINDS = ('success', 'error', 'warning')

DISPLAY_SECONDS = 3.0
FADE_SECONDS = 0.5

PRESENTATION = {
    'position': 'fixed',
    'top': '50%',
    'left': '50%',
    'transform': 'translate(-50%, -50%)',
    'background-color': 'rgba(0, 0, 0, 1)',
    'color': 'white',
    'padding': '15px 30px',
    'border-radius': '8px',
    'z-index': '1000',
    'text-align': 'center',
}


class Timeline:
    """Delayed callbacks run against a clock; ``run_pending`` fires what is due."""

    def __init__(self, clock=time.monotonic):
        self.clock = clock
        self._queue = []
        self._counter = itertools.count()

    def call_later(self, delay, callback, *args):
        due = self.clock() + delay
        heapq.heappush(self._queue, (due, next(self._counter), callback, args))
        return due

    def run_pending(self):
        fired = 0
        while self._queue and self._queue[0][0] <= self.clock():
            _, _, callback, args = heapq.heappop(self._queue)
            callback(*args)
            fired += 1
        return fired

    def __len__(self):
        return len(self._queue)


@dataclass(eq=False)
class FlashMessage:
    text: str
    kind: str = 'success'
    classes: Set[str] = field(default_factory=set)
    style: Dict[str, str] = field(default_factory=dict)
    handled: bool = False

    def __post_init__(self):
        if self.kind not in KINDS:
            raise ValueError(f"Unknown flash kind: {self.kind}")
        self.classes |= {FLASH_CLASS, self.kind}

    @classmethod
    def from_flashed(cls, category, text):
        """Build from a Flask ``(category, message)`` pair."""
        return cls(text, category if category in KINDS else 'warning')

    @property
    def css(self):
        return '; '.join(f'{name}: {value}' for name, value in self.style.items())


class FlashBoard:
    def __init__(self, timeline=None):
        self.timeline = timeline if timeline is not None else Timeline()
        self.document = []
        self.watching = False

    def watch(self):
        """Process what is already present and every later insertion."""
        self.watching = True
        self.sweep()

    def unwatch(self):
        self.watching = False

    def insert(self, node):
        self.document.append(node)
        self.notify_mutation()
        return node

    def add(self, text, kind='success'):
        node = self.insert(FlashMessage(text, kind))
        # Client-created messages are processed even without a watcher
        self.sweep()
        return node

    def notify_mutation(self):
        if self.watching:
            self.sweep()

    def sweep(self):
        for node in list(self.document):
            if FLASH_CLASS in node.classes and not node.handled:
                self.process(node)

    def process(self, node):
        if node.handled:
            return
        node.handled = True
        node.style.update(PRESENTATION)
        self.timeline.call_later(DISPLAY_SECONDS, self._fade, node)
        logger.debug("Flash %s scheduled for dismissal: %s", node.kind, node.text)

    def _fade(self, node):
        node.style['transition'] = f'opacity {FADE_SECONDS}s'
        node.style['opacity'] = '0'
        self.timeline.call_later(FADE_SECONDS, self._remove, node)

    def _remove(self, node):
        if node in self.document:
            self.document.remove(node)

    def messages(self, kind=None):
        return [node for node in self.document if kind is None or node.kind == kind]
