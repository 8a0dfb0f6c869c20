"""
Command handlers.

Handlers are thin and policy-free: permission checks already happened in the
dispatcher by the time a handler runs. Each handler receives a
``CommandContext`` and returns a ``HandlerResult``.
"""
