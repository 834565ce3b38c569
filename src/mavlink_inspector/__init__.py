"""
MAVLink Inspector

Live per-message-type rate and field monitor for MAVLink links.
"""

from .errors import FieldOutOfBounds, InspectorError, MalformedBuffer, MissingSchema
from .inspector import Inspector
from .message_decoder import MessageDecoder
from .raw_message import RawMessage
from .reporter import Reporter, compute_rate
from .schema import FieldDescriptor, MessageSchema, PrimitiveType, SchemaTable, load_dialect_schema
from .stats_aggregator import MessageTypeStats, StatsAggregator

__version__ = '0.1.0'

__all__ = [
    'FieldDescriptor',
    'FieldOutOfBounds',
    'Inspector',
    'InspectorError',
    'MalformedBuffer',
    'MessageDecoder',
    'MessageSchema',
    'MessageTypeStats',
    'MissingSchema',
    'PrimitiveType',
    'RawMessage',
    'Reporter',
    'SchemaTable',
    'StatsAggregator',
    'compute_rate',
    'load_dialect_schema',
]
