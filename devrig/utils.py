"""Utility functions for devrig."""

import logging
import sys
from collections.abc import Callable
from typing import Any

from devrig.constants import CONFIRMATION_WORD


def log_and_print_error(message: str, *args: Any) -> None:
    """Log error message and print to stderr.

    Parameters
    ----------
    message : str
        Error message with optional format placeholders
    *args : Any
        Format arguments for message
    """
    logging.debug(message, *args)
    formatted_msg = message % args if args else message
    print(f"Error: {formatted_msg}", file=sys.stderr)


def prompt_confirmation(
    prompt: str = f"Type '{CONFIRMATION_WORD}' to confirm: ",
    input_func: Callable[[str], str] = input,
) -> bool:
    """Ask the operator to type the confirmation word.

    Parameters
    ----------
    prompt : str
        Prompt shown to the operator
    input_func : Callable[[str], str]
        Function reading one line (default: input)

    Returns
    -------
    bool
        True only when the exact word was typed; EOF counts as a refusal
    """
    try:
        answer = input_func(prompt)
    except EOFError:
        print()
        return False

    return answer.strip() == CONFIRMATION_WORD
