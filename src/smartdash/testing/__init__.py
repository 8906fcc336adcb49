"""Public test-support utilities for smartdash.

Re-exports test doubles and factories so that consumer test suites
can import everything from a single ``smartdash.testing`` namespace.

Provided symbols:

- :class:`DashboardHarness` — Dashboard wired to test doubles.
- :class:`MockMqttClient` — in-memory MQTT double that records calls.
- :class:`MemoryStore` — in-memory key-value store.
- :class:`FakeClock` — deterministic clock for timing tests.
- :func:`make_settings` — ``Settings`` from defaults and overrides only,
  including ``section__field`` keyword overrides.
"""

from smartdash._mqtt import MockMqttClient
from smartdash._persistence import MemoryStore
from smartdash.testing._clock import FakeClock
from smartdash.testing._harness import DashboardHarness
from smartdash.testing._settings import make_settings

__all__ = [
    "DashboardHarness",
    "FakeClock",
    "MemoryStore",
    "MockMqttClient",
    "make_settings",
]
