"""Adphex chat engine.

Async client for the Adphex streaming chat protocol: decodes the NDJSON
event stream, reduces it into a render-ready conversation, and hosts the
account-disambiguation sub-flows and the demo-mode question governor.
"""

__version__ = "0.1.0"
