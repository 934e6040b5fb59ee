"""In-flight query bookkeeping, one request per layer category.

Issuing a request for a category supersedes the previous one: it is
cancelled and discarded before the new one starts. Completion handlers
check ``is_current`` after every await and drop stale results.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass


@dataclass(eq=False)
class CategoryRequest:
    """One asynchronous layer load.

    Compared by identity: the instance itself is the ownership token for
    the layer's loading entry.
    """

    category: str
    layer_id: str
    task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        """True while the request task has not finished."""
        return self.task is not None and not self.task.done()

    def __repr__(self) -> str:
        return f"<CategoryRequest {self.category}:{self.layer_id} at {id(self):#x}>"


class RequestRegistry:
    """Category -> live request."""

    def __init__(self) -> None:
        self._requests: dict[str, CategoryRequest] = {}

    def __len__(self) -> int:
        return len(self._requests)

    def get(self, category: str) -> CategoryRequest | None:
        return self._requests.get(category)

    def is_current(self, request: CategoryRequest) -> bool:
        """Check whether ``request`` is still the live request of its category.

        Args:
            request: The request to check.

        Returns:
            False once the request was superseded, cancelled or discarded.
        """
        return self._requests.get(request.category) is request

    def register(self, request: CategoryRequest) -> None:
        """Make ``request`` the live request of its category.

        Args:
            request: The new request. Any previous request of the category
                must have been superseded first.
        """
        self._requests[request.category] = request

    def discard(self, request: CategoryRequest) -> None:
        """Forget ``request`` once it has completed, if it is still current."""
        if self.is_current(request):
            del self._requests[request.category]

    def supersede(self, category: str) -> CategoryRequest | None:
        """Cancel the pending request of ``category``.

        Args:
            category: Layer category about to issue a new request.

        Returns:
            The cancelled request, or None when nothing was pending.
        """
        request = self._requests.pop(category, None)
        if request is None or not request.pending:
            return None
        request.task.cancel()
        return request

    def cancel_for(self, layer_id: str) -> CategoryRequest | None:
        """Cancel the pending request that targets ``layer_id``.

        Args:
            layer_id: ID of the layer being removed.

        Returns:
            The cancelled request, or None when no pending request targets
            the layer.
        """
        for category, request in list(self._requests.items()):
            if request.layer_id == layer_id:
                return self.supersede(category)
        return None

    def cancel_all(self) -> list[CategoryRequest]:
        """Cancel every pending request.

        Returns:
            The cancelled requests.
        """
        cancelled = []
        for category in list(self._requests):
            request = self.supersede(category)
            if request is not None:
                cancelled.append(request)
        return cancelled
