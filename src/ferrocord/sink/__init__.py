"""
Outbound action delivery.

- **action_sink.py**: Per-destination FIFO queues with rate-limit pauses,
  bounded exponential backoff and batched bulk deletes.
- **discord_executor.py**: py-cord adapter that performs the actual HTTP
  calls and translates platform errors into sink signals.
"""
