"""Errors raised by the repository layer itself.

Everything else (authorization, network, invalid queries) comes straight from
``pymongo.errors`` and is not wrapped.
"""


class DocumentNotFoundError(LookupError):
    """Raised when an update targets a document that does not exist."""

    def __init__(self, collection_path: str, document_id: str):
        super().__init__(f"No document '{document_id}' in collection '{collection_path}'")
        self.collection_path = collection_path
        self.document_id = document_id
