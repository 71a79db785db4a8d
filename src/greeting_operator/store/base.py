"""Resource store interface used by the reconcile core."""

from abc import ABC, abstractmethod


class ResourceStore(ABC):
    """Reads and writes cluster objects as plain dicts.

    Every method raises a ``greeting_operator.errors.StoreError`` subclass on
    failure; "not found" is reported through the return value instead.
    """

    @abstractmethod
    def get(self, kind, namespace, name):
        """Fetch an object, or None if it does not exist."""

    @abstractmethod
    def apply(self, kind, body):
        """Declaratively create or update ``body`` and return the stored object."""

    @abstractmethod
    def apply_status(self, kind, namespace, name, status, resource_version=None):
        """Write the status subresource.

        When ``resource_version`` is given the write is rejected with a
        conflict if the object changed since it was read.
        """

    @abstractmethod
    def set_finalizers(self, kind, namespace, name, finalizers, resource_version=None):
        """Replace ``metadata.finalizers`` on an object."""

    @abstractmethod
    def delete(self, kind, namespace, name):
        """Delete an object. Returns False if it was already gone."""

    @abstractmethod
    def is_registered(self, kind):
        """Whether the API server serves ``kind``."""

    def close(self):
        """Release client resources."""
