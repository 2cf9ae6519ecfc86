from filterbus.utilities.identifiers import deconstruct, smash
from filterbus.utilities.scanner import Kind, Scanner, Token, UnexpectedEndOfInput

__all__ = [
    "deconstruct",
    "smash",
    "Kind",
    "Scanner",
    "Token",
    "UnexpectedEndOfInput",
]
