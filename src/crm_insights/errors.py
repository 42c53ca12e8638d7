"""Exception hierarchy for the insights engine."""


class InsightsError(Exception):
    """Base class for all crm-insights errors."""


class AIClientError(InsightsError):
    """The external AI provider could not produce a usable prediction."""


class AIUnavailableError(AIClientError):
    """Provider unreachable, returned an error status, or is not configured."""


class AITimeoutError(AIClientError):
    """Provider did not answer within the configured timeout."""


class MalformedResponseError(AIClientError):
    """Provider answered but no JSON object could be extracted."""


class InsightStoreError(InsightsError):
    """Insight persistence failed. Never recovered locally."""


class EntityNotFoundError(InsightsError):
    """Requested opportunity or lead does not exist in the snapshot store."""
