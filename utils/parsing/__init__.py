# Parsing subpackage - JSON parsing utilities
from .json import repair_and_parse_json

__all__ = [
    "repair_and_parse_json",
]
