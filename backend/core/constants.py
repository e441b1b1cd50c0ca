"""Constants and enums for the Hookflow workflow engine."""

from enum import Enum


class RunStatus(str, Enum):
    """Lifecycle status of a workflow run."""

    RUNNING = "running"
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self != RunStatus.RUNNING


class ActionType(str, Enum):
    """Canonical operation names understood by the interpreter."""

    FILTER_COMPARE = "filter.compare"
    TRANSFORM_DEFAULT_VALUE = "transform.default_value"
    TRANSFORM_REPLACE_TEMPLATE = "transform.replace_template"
    TRANSFORM_PICK = "transform.pick"
    SEND_HTTP_REQUEST = "send.http_request"
    IF_START = "if.start"
    IF_END = "if.end"
    WHILE_START = "while.start"
    WHILE_END = "while.end"
    CREATE_OR_UPDATE = "create_or_update"


# Long-lived alias still found in stored workflows
FETCH_HTTP_REQUEST_ALIAS = "fetch.http_request"


class StepType(str, Enum):
    """Legacy grouped step shapes."""

    FILTER = "filter"
    TRANSFORM = "transform"
    HTTP_REQUEST = "http_request"


class CompareOp(str, Enum):
    """Comparison operators shared by filter.compare, if.start and while.start."""

    EQ = "eq"
    NEQ = "neq"
    NOTEQ = "noteq"
    CONTAINS = "contains"
    BEGINS = "begins"
    ENDS = "ends"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


class HttpMethod(str, Enum):
    """Methods accepted by the send.http_request operation."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class TemplateVisibility(str, Enum):
    """Visibility of a stored operation template."""

    PUBLIC = "public"
    PRIVATE = "private"


TRIGGER_PATH_PREFIX = "/t/"
MAX_WHILE_ITERATIONS = 100
