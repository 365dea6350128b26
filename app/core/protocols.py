"""
Protocol definitions for infrastructure collaborators.

Protocols define contracts that collaborators must fulfill, enabling:
- Duck typing with static type checking
- Dependency inversion (depend on abstractions, not concretions)
- Easy substitution in tests

Available Protocols:
    BlobStore: Opaque binary storage reached by URL reference

Usage:
    from core.protocols import BlobStore

    def attach(store: BlobStore, path: str, payload: bytes) -> str:
        return store.put(path, payload)

Note:
    - The default implementation lives in core.storage
    - @runtime_checkable allows isinstance() checks
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class BlobStore(Protocol):
    """
    Protocol for the blob-store collaborator.

    Messages and profiles only ever hold the URL returned by put(); the
    bytes themselves live in the store.
    """

    def put(self, path: str, data: bytes) -> str:
        """
        Store bytes durably under (approximately) the given path.

        Returns:
            URL that resolves to the stored blob
        """
        ...

    def get(self, url: str) -> bytes:
        """Read back the bytes referenced by url."""
        ...

    def exists(self, url: str) -> bool:
        """Return True if url references a durable blob in this store."""
        ...
