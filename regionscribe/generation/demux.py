# regionscribe/generation/demux.py
import enum
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

MARKER_REGEX = re.compile(r'Region (\d+):')
STOP_NOTE = "[Generation stopped by user]"
STOP_SUFFIX = "\n\n" + STOP_NOTE


class InputState(enum.IntEnum):
    # ordered, so a state can only move forward via max()
    QUEUED = 0
    GENERATING = 1
    COMPLETE = 2

    @property
    def label(self) -> str:
        return self.name.lower()


def region_marker(number: int) -> str:
    """The in-band header that opens the text of input `number` (1-based)."""
    return f"Region {number}:\n"


def region_boundary(number: int) -> str:
    """Separator written between two inputs, opening input `number` (1-based)."""
    return f"\n\n{region_marker(number)}"


@dataclass(frozen=True)
class Marker:
    number: int
    start: int
    end: int


@dataclass(frozen=True)
class DemuxResult:
    states: Tuple[InputState, ...]
    texts: Tuple[str, ...]
    stop_note: Optional[str] = None

    @property
    def current_index(self) -> Optional[int]:
        """0-based index of the input receiving text, or None."""
        for i, state in enumerate(self.states):
            if state is InputState.GENERATING:
                return i
        return None

    @property
    def is_finished(self) -> bool:
        return bool(self.states) and all(s is InputState.COMPLETE for s in self.states)


def split_stop_note(text: str) -> Tuple[str, Optional[str]]:
    """Separates a trailing stop note from the text it terminates."""
    stripped = text.rstrip()
    if not stripped.endswith(STOP_NOTE):
        return text, None
    return stripped[:-len(STOP_NOTE)].rstrip(), STOP_NOTE


def find_markers(text: str, input_count: int) -> List[Marker]:
    """
    Finds the region markers of `text` in document order.

    Markers are only accepted in sequence (1, 2, 3, ...) and at the start of a
    line, and never beyond `input_count`, so a model that writes "Region 7:" in
    the middle of its own answer does not move the stream to another input.
    """
    markers = []
    expected = 1
    for match in MARKER_REGEX.finditer(text):
        if expected > input_count:
            break
        if int(match.group(1)) != expected:
            continue
        if match.start() > 0 and text[match.start() - 1] != '\n':
            continue
        markers.append(Marker(expected, match.start(), match.end()))
        expected += 1
    return markers


def demultiplex(text: str, input_count: int, finished: bool = False) -> DemuxResult:
    """
    Rebuilds per-input state and text from the cumulative text of a job.

    The input of the highest marker seen is generating, the ones before it are
    complete, the ones after it are still queued. Once `finished` is set every
    input is complete.
    """
    if input_count <= 0:
        return DemuxResult((), (), None)

    body, stop_note = split_stop_note(text)
    markers = find_markers(body, input_count)
    texts = [""] * input_count
    states = [InputState.QUEUED] * input_count

    if not markers:
        # a single input may have been streamed without its header
        if input_count < 2 and body.strip():
            texts[0] = body.strip()
            states[0] = InputState.GENERATING
    else:
        for i, marker in enumerate(markers):
            end = markers[i + 1].start if i + 1 < len(markers) else len(body)
            texts[marker.number - 1] = body[marker.end:end].strip()
        current = markers[-1].number - 1
        for i in range(current):
            states[i] = InputState.COMPLETE
        states[current] = InputState.GENERATING

    if finished:
        states = [InputState.COMPLETE] * input_count
    return DemuxResult(tuple(states), tuple(texts), stop_note)


class StreamDemultiplexer:
    """
    Folds the growing text of one job into per-input state.

    update() can be called with every new prefix of the stream. States only move
    forward, and the text of an input is frozen the moment it is complete.
    """

    def __init__(self, input_count: int):
        self.input_count = input_count
        self.reset()

    def reset(self):
        self._states = [InputState.QUEUED] * self.input_count
        self._frozen = [None] * self.input_count
        self._last = DemuxResult(tuple(self._states), ("",) * self.input_count, None)

    @property
    def result(self) -> DemuxResult:
        return self._last

    def update(self, text: str, finished: bool = False) -> DemuxResult:
        parsed = demultiplex(text, self.input_count, finished)
        texts = list(parsed.texts)
        for i in range(self.input_count):
            self._states[i] = max(self._states[i], parsed.states[i])
            if self._frozen[i] is not None:
                texts[i] = self._frozen[i]
            elif self._states[i] is InputState.COMPLETE:
                self._frozen[i] = texts[i]
        self._last = DemuxResult(tuple(self._states), tuple(texts), parsed.stop_note)
        return self._last
