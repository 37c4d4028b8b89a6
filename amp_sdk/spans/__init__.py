from .attributes import ATTRIBUTE_ALIASES, AttributeValue, SpanStatus, SpanType, aliased_keys, canonical_key
from .span import Span
from .trace import Trace
