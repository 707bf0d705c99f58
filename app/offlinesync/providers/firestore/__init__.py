from .firestore_client import FirestoreClient

__all__ = ["FirestoreClient"]
