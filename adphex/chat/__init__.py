"""Conversation layer: data model, snapshot store, sub-flows, governor and session.

Import from the submodules directly (``adphex.chat.session``...); the
streaming package depends on ``adphex.chat.models``, so this package does
not re-export the modules that depend on streaming.
"""
