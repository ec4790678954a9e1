"""State container layer.

This package owns the single canonical session state tree: the merge
algorithms, the startup queue, change notifications and the read-only view
handed to everything else.
"""
