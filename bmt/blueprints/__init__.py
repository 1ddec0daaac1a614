"""
Barrier Evaluation Tracker
Blueprint registry.
"""

from flask import g, request

from bmt.utils.errors import E, api_error


def caller_id():
    """Identity resolved by bmt.middleware.identity, or None."""
    return getattr(g, "azure_unique_id", None)


def json_body(*required):
    """Return (data, err_response) for the request's JSON body.

    A body that is not a JSON object produces a 400 ERR_VALIDATION_INVALID.
    Missing or blank required fields produce a 400 ERR_VALIDATION_REQUIRED.
    """
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return {}, api_error(E.VALIDATION_INVALID, "Request body must be a JSON object", status=400)
    missing = [
        f for f in required
        if data.get(f) is None or (isinstance(data.get(f), str) and not data[f].strip())
    ]
    if missing:
        return data, api_error(
            E.VALIDATION_REQUIRED,
            f"Missing required field(s): {', '.join(missing)}",
            details={f: "required" for f in missing},
        )
    return data, None
