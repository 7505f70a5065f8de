"""Persistence collaborators: graph lookup, session records and memory."""

from contextflow.storage.graph_store import (
    FileGraphStore,
    GraphLookup,
    InMemoryGraphStore,
    load_graph_document,
    load_graph_file,
)
from contextflow.storage.memory_store import InMemoryMemoryBackend, MemoryBackend
from contextflow.storage.session_store import SessionStore

__all__ = [
    "FileGraphStore",
    "GraphLookup",
    "InMemoryGraphStore",
    "InMemoryMemoryBackend",
    "MemoryBackend",
    "SessionStore",
    "load_graph_document",
    "load_graph_file",
]
