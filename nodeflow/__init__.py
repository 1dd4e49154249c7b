"""NodeFlow - graph execution engine for node-based workflow editors.

Validates a node/edge graph, orders it topologically and runs each node's
handler with the outputs of its upstream nodes as input.
"""

__version__ = "0.1.0"
