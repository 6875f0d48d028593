# backends/base.py
from abc import ABC, abstractmethod
from typing import List, Tuple


class BucketStoreError(Exception):
    """Raised for any failure of the persistence engine."""


class BaseBucketStore(ABC):
    """Abstract base class for embedded key-value stores with named buckets.

    Keys are strings, values are bytes. Every write is committed on its
    own; there is no transaction spanning several calls.
    """

    @abstractmethod
    def create_bucket(self, name: str) -> None:
        """Creates the bucket if it does not exist yet."""
        pass

    @abstractmethod
    def put(self, bucket: str, key: str, value: bytes) -> None:
        pass

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        """Removes the key; removing a missing key is not an error."""
        pass

    @abstractmethod
    def items(self, bucket: str) -> List[Tuple[str, bytes]]:
        """Returns every key/value pair in the bucket, read in one transaction."""
        pass

    @abstractmethod
    def close(self) -> None:
        pass
