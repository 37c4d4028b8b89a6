from .batcher import DeliveryQueue
from .exit_hooks import ExitHooks
from .retry import backoff_delay_ms, retry_with_backoff
