"""Lazy, at-most-once provisioning of the log database and view."""

import asyncio
import enum
import logging
from collections.abc import Callable

from couchlog.core.documents import DESIGN_DOC_ID, build_design_document
from couchlog.core.exceptions import (
    CouchlogError,
    ConflictError,
    NotFoundError,
    ProvisioningError,
)
from couchlog.core.ports import DocumentStorePort

logger = logging.getLogger(__name__)


class ProvisioningState(enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    FAILED = "failed"


class ProvisioningPolicy(enum.Enum):
    """How callers that did not start provisioning behave.

    OPTIMISTIC: return at once and assume provisioning will succeed.
    AWAIT: wait for the in-flight attempt and share its outcome.
    """

    OPTIMISTIC = "optimistic"
    AWAIT = "await"


class IndexProvisioner:
    """Ensures the database and the ``_design/Logs`` view exist.

    The first call to ``ensure`` or ``start`` flips the state to IN_PROGRESS
    before anything is awaited, so callers racing in on the same event loop
    never launch a second attempt. A failed attempt is not retried: the state
    stays FAILED for the lifetime of the provisioner.
    """

    def __init__(
        self,
        store: Callable[[], DocumentStorePort],
        policy: ProvisioningPolicy = ProvisioningPolicy.OPTIMISTIC,
    ) -> None:
        """Initialize the provisioner.

        Args:
            store: Callable returning the store to provision. Called lazily
                so the store client can itself be built on first use.
            policy: Behaviour of callers that did not trigger provisioning.
        """
        self._store = store
        self.policy = policy
        self.state = ProvisioningState.NOT_STARTED
        self._task: asyncio.Future[None] | None = None
        self._error: ProvisioningError | None = None

    @property
    def attempted(self) -> bool:
        return self.state is not ProvisioningState.NOT_STARTED

    def start(self) -> "asyncio.Future[None] | None":
        """Launch provisioning in the background if it has not started.

        Must be called from a running event loop. Returns the in-flight
        future for the caller that launched it, None for everyone else.
        """
        if self.attempted:
            return None
        self.state = ProvisioningState.IN_PROGRESS
        self._task = asyncio.ensure_future(self._provision())
        self._task.add_done_callback(self._on_done)
        return self._task

    async def ensure(self) -> None:
        """Ensure the database and view exist.

        Raises:
            ProvisioningError: If this call triggered provisioning and it
                failed, or under the AWAIT policy if the shared attempt failed.
        """
        task = self.start()
        if task is not None:
            # A cancelled caller must not cancel the shared attempt.
            await asyncio.shield(task)
            return
        if self.policy is ProvisioningPolicy.OPTIMISTIC:
            return
        if self._task is not None and not self._task.done():
            await asyncio.shield(self._task)
        if self._error is not None:
            raise self._error

    def _on_done(self, task: "asyncio.Future[None]") -> None:
        if task.cancelled():
            self.state = ProvisioningState.FAILED
            self._error = ProvisioningError("Index provisioning was cancelled")
            return
        error = task.exception()
        if error is None:
            self.state = ProvisioningState.DONE
            logger.debug("Ensured view %s", DESIGN_DOC_ID)
            return
        self.state = ProvisioningState.FAILED
        self._error = (
            error
            if isinstance(error, ProvisioningError)
            else ProvisioningError(str(error), error)
        )
        logger.warning("Failed to provision view %s: %s", DESIGN_DOC_ID, error)

    async def _provision(self) -> None:
        store = self._store()
        try:
            try:
                await store.info()
            except NotFoundError:
                logger.info("Creating missing log database")
                await store.create()

            try:
                await store.get(DESIGN_DOC_ID)
                return
            except NotFoundError:
                pass

            try:
                await store.insert(build_design_document())
            except ConflictError:
                logger.debug("View %s created concurrently", DESIGN_DOC_ID)
        except CouchlogError as e:
            raise ProvisioningError(
                f"Could not provision {DESIGN_DOC_ID}: {e}",
                original_error=e,
                context={"design_doc": DESIGN_DOC_ID},
            ) from e
