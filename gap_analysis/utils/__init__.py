from .logger import setup_logging
from .json_parsing import Malformed, Ok, ParseResult, parse_json_items

__all__ = ["setup_logging", "Malformed", "Ok", "ParseResult", "parse_json_items"]
