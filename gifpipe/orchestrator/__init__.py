"""Pipeline coordinator.

Exports:
    - registry: stage table and topology
    - state: status vocabulary and channel names
    - submission: id allocation and first publish
    - worker: per-stage worker process
"""
