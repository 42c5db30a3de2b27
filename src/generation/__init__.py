"""Content generation module using LLMs."""

from .post_assembler import PostAssembler, calculate_cost
from .retrier import ResponseValidator
from .section_generator import SectionGenerator

__all__ = ["PostAssembler", "ResponseValidator", "SectionGenerator", "calculate_cost"]
