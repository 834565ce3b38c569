"""
Message Decoder Module

Generic MAVLink payload decoder driven by field descriptors. There is no
per-message code: every field is read by dispatching on its primitive type
(width and struct code), so any message the schema describes can be
rendered, including ones added to a dialect after this tool was written.
"""

import struct
import logging
from typing import List, Optional, Sequence, Tuple

from .errors import FieldOutOfBounds
from .raw_message import RawMessage
from .schema import FieldDescriptor, PrimitiveType

logger = logging.getLogger(__name__)


OUT_OF_BOUNDS_MARKER = '<out of bounds>'

GREEN_CONSOLE_TEXT = '\033[32m'
NORMAL_CONSOLE_TEXT = '\033[0m'


def format_value(value, primitive_type: PrimitiveType) -> str:
    """Render one decoded element."""
    if primitive_type.is_float:
        return f"{value:.3f}"
    if primitive_type is PrimitiveType.CHAR:
        return value.decode('utf-8', errors='replace')
    return str(value)


class MessageDecoder:
    """
    Turns a RawMessage plus its field descriptors into one line of text.

    The decoder holds no per-message state, so a single instance can be
    shared freely.

    Attributes:
        byte_order: struct byte order prefix for multi-byte fields
            ('<' little-endian, as MAVLink defines)
        color_enabled: Wrap the message name in ANSI green
    """

    def __init__(self, byte_order: str = '<', color_enabled: bool = False):
        if byte_order not in ('<', '>'):
            raise ValueError(f"byte_order must be '<' or '>', got {byte_order!r}")
        self.byte_order = byte_order
        self.color_enabled = color_enabled

    def decode(self, raw: RawMessage, descriptors: Optional[Sequence[FieldDescriptor]],
               type_name: Optional[str] = None) -> str:
        """
        Render a message as `NAME (sysid=.., compid=.., field=value, ...)`.

        Args:
            raw: Message to render
            descriptors: Field layout in display order, None if the type is unknown
            type_name: Message name; 'MSGID=<id>' is used when missing

        Returns:
            The formatted line, without a trailing newline
        """
        if descriptors is None:
            return self.format_unknown(raw)

        name = type_name or f"MSGID={raw.type_id}"
        if self.color_enabled:
            name = f"{GREEN_CONSOLE_TEXT}{name}{NORMAL_CONSOLE_TEXT}"

        parts = [f"sysid={raw.sender_id}", f"compid={raw.component_id}"]
        parts.extend(f"{field_name}={text}"
                     for field_name, text in self.decode_fields(raw, descriptors))
        return f"{name} ({', '.join(parts)})"

    @staticmethod
    def format_unknown(raw: RawMessage) -> str:
        """Fallback line for a message id with no schema."""
        return (f"MSGID={raw.type_id} (sysid={raw.sender_id}, "
                f"compid={raw.component_id}) len={raw.length}")

    def decode_fields(self, raw: RawMessage,
                      descriptors: Sequence[FieldDescriptor]) -> List[Tuple[str, str]]:
        """
        Decode every field to text, in descriptor order.

        A field that would read past the payload is replaced by
        OUT_OF_BOUNDS_MARKER; the other fields are unaffected.

        Returns:
            List of (field name, rendered value)
        """
        rendered = []
        for descriptor in descriptors:
            try:
                text = self.decode_field(raw, descriptor)
            except FieldOutOfBounds as e:
                logger.debug(f"Message id {raw.type_id}: {e}")
                text = OUT_OF_BOUNDS_MARKER
            rendered.append((descriptor.name, text))
        return rendered

    def decode_field(self, raw: RawMessage, descriptor: FieldDescriptor) -> str:
        """
        Decode and render a single field.

        Raises:
            FieldOutOfBounds: If the field extends past the payload
        """
        if descriptor.is_string:
            return self._decode_string(self._field_bytes(raw, descriptor))

        values = self.read_values(raw, descriptor)
        rendered = [format_value(v, descriptor.primitive_type) for v in values]
        if descriptor.array_length > 0:
            return f"({', '.join(rendered)})"
        return rendered[0]

    def read_values(self, raw: RawMessage, descriptor: FieldDescriptor) -> tuple:
        """
        Read the raw element values of a field.

        Returns:
            Tuple of element_count values (ints, floats, or 1-byte bytes for char)

        Raises:
            FieldOutOfBounds: If the field extends past the payload
        """
        data = self._field_bytes(raw, descriptor)
        code = descriptor.primitive_type.struct_code
        fmt = f"{self.byte_order}{descriptor.element_count}{code}"
        return struct.unpack(fmt, data)

    @staticmethod
    def _field_bytes(raw: RawMessage, descriptor: FieldDescriptor) -> bytes:
        # Checked against both the declared length and the buffer itself
        limit = min(raw.length, len(raw.payload))
        start = descriptor.byte_offset
        end = start + descriptor.size
        if start < 0 or end > limit:
            raise FieldOutOfBounds(descriptor.name, end, limit)
        return bytes(raw.payload[start:end])

    @staticmethod
    def _decode_string(data: bytes) -> str:
        terminator = data.find(b'\x00')
        if terminator >= 0:
            data = data[:terminator]
        return data.decode('utf-8', errors='replace')
