"""Parsing of topic inputs and loosely formatted model responses."""

from .response_parser import extract_urls, parse_lenient
from .topic_parser import InputError, ParsedRows, RawBytes, TopicParser

__all__ = ["InputError", "ParsedRows", "RawBytes", "TopicParser", "extract_urls", "parse_lenient"]
