"""Parser for iCal (RFC 5545) VEVENT blocks."""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from processor.date_normalizer import normalize
from processor.models import CalendarEvent

logger = logging.getLogger(__name__)


def unfold_lines(text: str) -> List[str]:
    """
    Normalize line endings and join folded continuation lines.

    A line starting with a space or tab continues the previous logical line;
    its first character is dropped. Blank lines are discarded.

    Args:
        text: Raw iCal text

    Returns:
        List of logical lines
    """
    lines = text.replace('\r\n', '\n').replace('\r', '\n').split('\n')
    unfolded: List[str] = []

    for line in lines:
        if line.startswith((' ', '\t')):
            if unfolded:
                unfolded[-1] += line[1:]
        elif line.strip():
            unfolded.append(line)

    return unfolded


def split_property(line: str) -> Optional[Tuple[str, Dict[str, str], str]]:
    """
    Split a content line into (NAME, params, value).

    Returns:
        Tuple of upper-cased property name, parameters keyed by upper-cased
        name, and the raw value; None when the line has no usable colon
    """
    colon_index = line.find(':')
    if colon_index <= 0:
        return None

    key = line[:colon_index]
    value = line[colon_index + 1:]
    params: Dict[str, str] = {}

    semicolon_index = key.find(';')
    if semicolon_index > 0:
        for param in key[semicolon_index + 1:].split(';'):
            eq_index = param.find('=')
            if eq_index > 0:
                params[param[:eq_index].upper()] = param[eq_index + 1:]
        key = key[:semicolon_index]

    return key.upper(), params, value


@dataclass
class ParsedFeed:
    """Events of one feed plus the count of VEVENT blocks dropped."""
    events: List[CalendarEvent] = field(default_factory=list)
    skipped: int = 0


class IcalParser:
    """Flat scanner turning iCal text into CalendarEvent objects."""

    def parse(self, raw_text: str) -> List[CalendarEvent]:
        """Parse all complete VEVENT blocks from iCal text."""
        return self.parse_feed(raw_text).events

    def parse_feed(self, raw_text: str) -> ParsedFeed:
        """
        Parse all VEVENT blocks, counting the ones that are dropped.

        Blocks without UID, or whose DTSTART / DTEND are missing or
        unparsable, are dropped.

        Args:
            raw_text: Feed body

        Returns:
            ParsedFeed with CalendarEvent objects in feed order
        """
        parsed = ParsedFeed()
        current: Optional[dict] = None

        for line in unfold_lines(raw_text):
            line = line.strip()

            if line == 'BEGIN:VEVENT':
                current = {}
            elif line == 'END:VEVENT':
                if current is not None:
                    event = self._build_event(current)
                    if event:
                        parsed.events.append(event)
                    else:
                        parsed.skipped += 1
                current = None
            elif current is not None:
                self._apply_property(current, line)

        return parsed

    def _apply_property(self, block: dict, line: str) -> None:
        parts = split_property(line)
        if parts is None:
            return
        name, params, value = parts

        if name == 'UID':
            block['uid'] = value
        elif name == 'SUMMARY':
            block['summary'] = value
        elif name == 'STATUS':
            block['status'] = value
        elif name == 'DTSTART':
            block['start'] = normalize(value, params)
        elif name == 'DTEND':
            block['end'] = normalize(value, params)
        elif name == 'DESCRIPTION':
            block['description'] = value.replace('\\n', '\n')

    def _build_event(self, block: dict) -> Optional[CalendarEvent]:
        uid = block.get('uid')
        start = block.get('start')
        end = block.get('end')

        if not uid or start is None or end is None:
            logger.warning(
                f"Skipping incomplete event (missing UID, DTSTART or DTEND): "
                f"uid={uid!r} summary={block.get('summary')!r}"
            )
            return None

        return CalendarEvent(
            uid=uid,
            start=start,
            end=end,
            summary=block.get('summary'),
            status=block.get('status'),
            description=block.get('description'),
        )
