# util/constants.py

# Reserved namespace for the process-wide default store.
DEFAULT_NAMESPACE = "session"
GLOBAL_DICT_NAME = "_session"


class DataVersion:
    # Current major+minor of the on-disk format (0.4 -> 4).
    CURRENT = 4
    EJSON = 1
    EJSON_MARKER = 2
