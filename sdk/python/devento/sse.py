"""Server-Sent-Events decoding for streamed command output"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Union

EVENT_PREFIX = "event: "
DATA_PREFIX = "data: "


@dataclass(frozen=True)
class SSEEvent:
    event: str
    data: str

    def json(self) -> Dict[str, Any]:
        """Decode the payload; raises ``ValueError`` on malformed JSON"""
        payload = json.loads(self.data)
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object in {self.event!r} event")
        return payload


def parse_sse(lines: Iterable[Union[bytes, str]]) -> Iterator[SSEEvent]:
    """Decode a line stream into events.

    ``lines`` is anything that yields lines, such as ``Response.iter_lines()``
    or a binary file object. A blank line emits the pending event when both
    its name and data are present, then resets both. Other fields (``id:``,
    ``retry:``, comments) are ignored and a block cut off without a trailing
    blank line is dropped.
    """
    event = ""
    data = ""

    for raw in lines:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")

        if not line:
            if event and data:
                yield SSEEvent(event, data)
            event = ""
            data = ""
            continue

        if line.startswith(EVENT_PREFIX):
            event = line[len(EVENT_PREFIX):]
        elif line.startswith(DATA_PREFIX):
            data = line[len(DATA_PREFIX):]
