"""Gateway building blocks: contract handling, forwarding and dispatch."""
