"""Business services of the workspace knowledge pipeline.

Each service takes its collaborators (model adapters, the persistence
store, other services) through its constructor; ``workspace_rag.main``
wires them together.
"""
