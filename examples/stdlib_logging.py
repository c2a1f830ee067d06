"""Example sending standard library logging records to CouchDB.

Run with:
    python -m examples.stdlib_logging

Every record passed to the root logger is written as a log document.
Extra fields and exception details become part of the document params.
"""

import logging

from couchlog import CouchDBHandler, CouchDBTransport, CouchDBTransportOptions

handler = CouchDBHandler(
    CouchDBTransport(CouchDBTransportOptions.from_env()),
    context_provider=lambda: {"service": "checkout"},
)
logging.basicConfig(level=logging.INFO, handlers=[handler, logging.StreamHandler()])

logger = logging.getLogger("checkout")


def charge(order_id: int, amount: float) -> None:
    logger.info("charging order %s", order_id, extra={"amount": amount})
    try:
        raise RuntimeError("card declined")
    except RuntimeError:
        logger.exception("charge failed", extra={"order_id": order_id})


if __name__ == "__main__":
    charge(42, 19.99)
    # Waits for pending writes and stops the background loop
    logging.shutdown()
