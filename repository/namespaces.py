# repository/namespaces.py
from typing import Final

PS_KEYS: Final[str] = "__PSKEYS__"  # ordered persistent key names
PSA_KEYS: Final[str] = "__PSAKEYS__"  # ordered authenticated key names
DATA_VERSION: Final[str] = "__PSDATAVERSION__"  # integer schema marker


def ps_keys_key(namespace: str) -> str:
    return PS_KEYS + namespace


def psa_keys_key(namespace: str) -> str:
    return PSA_KEYS + namespace


def data_version_key(namespace: str) -> str:
    return DATA_VERSION + namespace


def slot_key(namespace: str, key: str) -> str:
    # Slots are bare concatenation; the empty namespace is the default store.
    return namespace + key
