import uuid


def new_id() -> str:
    """
    Generate a primary key for lifecycle rows.

    Keys are assigned up front (not by the database) so a request id can be
    handed to the auto-cancel scheduler before the row is flushed.
    """
    return str(uuid.uuid4())
