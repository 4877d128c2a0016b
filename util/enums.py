# util/enums.py
from enum import Enum


class Color(str, Enum):
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    BOLD = "\033[1m"

    def __str__(self):
        return self.value


class Environment(str, Enum):
    DEV = "dev"
    PROD = "prod"


class StoreBackend(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"


class ErrorMessage(str, Enum):
    NAMESPACE_NOT_STRING = "namespace must be a non-empty string"
    EQUALS_NOT_SCALAR = "equals: value must be scalar"
    UNKNOWN_LIFETIME = "unknown lifetime type: {}"
    NOT_JSON_TEXT = "expected canonical-encoded text, got {}"
    INVALID_JSON = "invalid canonical-encoded text: {}"
    UNKNOWN_CUSTOM_TYPE = "custom type not registered: {}"
    BAD_SPECIAL_VALUE = "malformed special value: {}"

    def format(self, *args) -> str:
        return self.value.format(*args)
