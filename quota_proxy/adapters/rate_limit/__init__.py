"""Rate limiting adapters.

The request handler depends on the abstraction in ``base`` only; the
sliding-window-log limiter keeps all of its state in a quota store so that
several proxy processes can share it.
"""
