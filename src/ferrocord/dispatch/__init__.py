"""
Invocation pipeline.

- **normalizer.py**: Converts gateway events into ``Invocation`` records.
- **registry.py**: Static command table built once at startup.
- **dispatcher.py**: Runs the policy gate and the handler for one invocation
  and turns the outcome into outbound actions.
- **intake.py**: Per-channel queues that keep replies in arrival order.
"""
