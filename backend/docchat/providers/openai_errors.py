"""Classification of OpenAI SDK exceptions for retry decisions."""

import openai


def is_transient_openai_error(error: Exception) -> bool:
    """Return True when retrying the call may succeed.

    Connection failures (including SDK timeouts), rate limits and 5xx
    responses are transient; auth, permission and request errors are not.
    """
    if isinstance(error, (openai.APIConnectionError, openai.RateLimitError)):
        return True
    if isinstance(error, openai.APIStatusError):
        return error.status_code >= 500
    return False
